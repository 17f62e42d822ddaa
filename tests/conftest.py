import pytest

from flowr.speech import SpeechRecognizer, UtteranceStream


class FakeClock:
    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class ManualRunner:
    """Collects spawned work so tests decide when a recognition stream runs."""

    def __init__(self) -> None:
        self.pending = []

    def __call__(self, target) -> None:
        self.pending.append(target)

    def run_next(self) -> None:
        self.pending.pop(0)()


class FakeStream(UtteranceStream):
    def __init__(self, items) -> None:
        self.items = list(items)
        self.closed = False

    def __iter__(self):
        for item in self.items:
            if self.closed:
                return
            if callable(item):
                item()
                continue
            if isinstance(item, BaseException):
                raise item
            yield item

    def close(self) -> None:
        self.closed = True


class FakeRecognizer(SpeechRecognizer):
    def __init__(self, scripts=None) -> None:
        self.scripts = list(scripts or [])
        self.streams = []

    def open_stream(self) -> UtteranceStream:
        items = self.scripts.pop(0) if self.scripts else []
        stream = FakeStream(items)
        self.streams.append(stream)
        return stream


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def runner():
    return ManualRunner()
