import pytest

from game import ConsoleIO, CryptoProvider, Die


class FixedCryptoProvider(CryptoProvider):
    """Hands out pre-arranged secret values and a fixed key."""

    def __init__(self, values, key: bytes = b"\x01" * 32):
        self.values = list(values)
        self.key = key

    def generate_key(self) -> bytes:
        return self.key

    def generate_secure_random(self, max_val: int) -> int:
        value = self.values.pop(0)
        assert 0 <= value < max_val
        return value


class ScriptedIO(ConsoleIO):
    def __init__(self, answers):
        self.answers = list(answers)
        self.lines: list[str] = []
        super().__init__(input_func=self._next_answer, output_func=self.lines.append)

    def _next_answer(self, prompt: str) -> str:
        if not self.answers:
            raise EOFError
        return self.answers.pop(0)

    @property
    def text(self) -> str:
        return "\n".join(self.lines)


@pytest.fixture
def classic_dice():
    return [
        Die((2, 2, 4, 4, 9, 9)),
        Die((1, 1, 6, 6, 8, 8)),
        Die((3, 3, 5, 5, 7, 7)),
    ]


@pytest.fixture
def fixed_crypto():
    return FixedCryptoProvider


@pytest.fixture
def scripted_io():
    return ScriptedIO
