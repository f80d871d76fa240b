
import logging
import os
import random
import sys
import secrets
import hmac
import hashlib
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Mapping, Sequence
from tabulate import tabulate

logger = logging.getLogger(__name__)

FACE_COUNT = 6
MIN_DICE = 3
KEY_BYTES = 32

# ==============================================================================
# 1. Error Handling Classes
# ==============================================================================

class ValidationError(Exception):
    """Raised when a die, range, index or supplied value is malformed."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class ArgumentError(ValidationError):
    """
    Custom exception for argument validation errors.
    Provides a formatted message including an example of correct usage.
    """
    _invocation_command = "python"

    @staticmethod
    def set_invocation_command(command: str):
        """Sets the command used to run the script (e.g., 'python' or 'py')."""
        ArgumentError._invocation_command = command

    def __str__(self) -> str:
        script_name = sys.argv[0] if sys.argv else 'game.py'
        example = (
            f"{ArgumentError._invocation_command} {script_name} "
            f"2,2,4,4,9,9 1,1,6,6,8,8 3,3,5,5,7,7"
        )
        return f"\nArgument Error: {self.message}\n\nExample usage:\n{example}\n"


class ProtocolViolation(Exception):
    """A reveal did not match its commitment, or an exchange ran out of order."""


class InputAbort(Exception):
    """The user left the game or input ended."""

# ==============================================================================
# 2. Data Structure for a Die
# ==============================================================================

def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass(frozen=True)
class Die:
    faces: tuple[int, ...]

    def __post_init__(self):
        try:
            faces = tuple(self.faces)
        except TypeError:
            raise ValidationError(f"Die faces must be a sequence of integers, got {self.faces!r}.") from None
        if len(faces) != FACE_COUNT:
            raise ValidationError(f"A die must have exactly {FACE_COUNT} faces, got {len(faces)}.")
        if not all(_is_int(f) for f in faces):
            raise ValidationError("All dice faces must be integer values.")
        object.__setattr__(self, "faces", faces)

    def __str__(self) -> str:
        return ",".join(map(str, self.faces))

    def __len__(self) -> int:
        return len(self.faces)

    def draw_random_face(self, rng: random.Random | None = None) -> int:
        # Local, non-adversarial draw. Fair rolls go through FairExchange.
        return (rng or random).choice(self.faces)

    def face_at(self, index: int) -> int:
        if not _is_int(index):
            raise ValidationError(f"Face index must be an integer, got {index!r}.")
        return self.faces[index % len(self.faces)]

# ==============================================================================
# 3. Command-Line Argument Parser
# ==============================================================================

ArgumentError.NOT_ENOUGH_DICE = ArgumentError(f"Please specify at least {MIN_DICE} dice.")
ArgumentError.WRONG_FACE_COUNT = ArgumentError(f"Each die must have exactly {FACE_COUNT} faces.")
ArgumentError.NON_INTEGER_VALUE = ArgumentError("All dice faces must be integer values.")


class DiceParser:
    @staticmethod
    def parse(args: list[str]) -> list[Die]:
        if len(args) < MIN_DICE:
            raise ArgumentError.NOT_ENOUGH_DICE
        dice_list = [DiceParser.parse_die(arg) for arg in args]
        logger.debug("Parsed %d dice: %s", len(dice_list), " ".join(map(str, dice_list)))
        return dice_list

    @staticmethod
    def parse_die(arg: str) -> Die:
        try:
            faces = [int(f.strip()) for f in arg.split(',')]
        except ValueError:
            raise ArgumentError.NON_INTEGER_VALUE from None
        if len(faces) != FACE_COUNT:
            raise ArgumentError.WRONG_FACE_COUNT
        return Die(tuple(faces))

# ==============================================================================
# 4. Cryptographic Operations Provider
# ==============================================================================

class CryptoProvider:
    """Source of keys and secret values. Substitute a subclass to make tests deterministic."""

    def generate_key(self) -> bytes:
        return secrets.token_bytes(KEY_BYTES)

    def generate_secure_random(self, max_val: int) -> int:
        return secrets.randbelow(max_val)


def calculate_hmac(key: bytes, message_int: int) -> str:
    message_bytes = str(message_int).encode('utf-8')
    return hmac.new(key, message_bytes, hashlib.sha256).hexdigest()


def _check_range(range_size: int):
    if not _is_int(range_size) or range_size < 1:
        raise ValidationError(f"Range must be a positive integer, got {range_size!r}.")


def _check_value(name: str, value: int, range_size: int):
    if not _is_int(value) or not 0 <= value < range_size:
        raise ValidationError(f"{name} must be an integer in 0..{range_size - 1}, got {value!r}.")

# ==============================================================================
# 5. Commitments and the Fair Exchange
# ==============================================================================

@dataclass(frozen=True)
class CommitmentRecord:
    key: bytes
    secret_value: int
    mac: str


class FairCommitment:
    @staticmethod
    def generate(range_size: int, crypto: CryptoProvider | None = None) -> CommitmentRecord:
        _check_range(range_size)
        crypto = crypto or CryptoProvider()
        secret_value = crypto.generate_secure_random(range_size)
        key = crypto.generate_key()
        return CommitmentRecord(key=key, secret_value=secret_value, mac=calculate_hmac(key, secret_value))

    @staticmethod
    def verify(key: bytes | str, secret_value: int, mac: str) -> bool:
        """
        Recompute the HMAC of a revealed value and compare it with the published one.

        ``key`` may be raw bytes or the hex string shown in the reveal.
        """
        if not _is_int(secret_value) or not isinstance(mac, str) or not mac.isascii():
            return False
        if isinstance(key, str):
            try:
                key = bytes.fromhex(key)
            except ValueError:
                return False
        if not isinstance(key, (bytes, bytearray)):
            return False
        expected = calculate_hmac(key, secret_value)
        return hmac.compare_digest(expected, mac.lower())


class OutcomeCombiner:
    @staticmethod
    def combine(secret_value: int, counterpart_value: int, range_size: int) -> int:
        _check_range(range_size)
        _check_value("Secret value", secret_value, range_size)
        _check_value("Counterpart value", counterpart_value, range_size)
        return (secret_value + counterpart_value) % range_size


class ExchangeState(str, Enum):
    UNCOMMITTED = "UNCOMMITTED"
    COMMITTED = "COMMITTED"
    REVEALED = "REVEALED"
    CONSUMED = "CONSUMED"


@dataclass(frozen=True)
class Commitment:
    """The only part of an exchange visible before the counterpart answers."""
    mac: str
    range_size: int


@dataclass(frozen=True)
class Reveal:
    key: bytes
    secret_value: int
    counterpart_value: int
    mac: str
    range_size: int

    @property
    def key_hex(self) -> str:
        return self.key.hex().upper()


class FairExchange:
    """
    One commit-reveal round between the committing side and a counterpart.

    The exchange moves strictly forward:

        UNCOMMITTED --commit()--> COMMITTED --reveal(v)--> REVEALED --settle(r)--> CONSUMED

    Key and secret value only leave the exchange inside the ``Reveal``
    returned by ``reveal()``, which requires the counterpart's value first.
    """

    def __init__(self, range_size: int, crypto: CryptoProvider | None = None):
        _check_range(range_size)
        self.range_size = range_size
        self.state = ExchangeState.UNCOMMITTED
        self._crypto = crypto or CryptoProvider()
        self.__record: CommitmentRecord | None = None
        self._counterpart_value: int | None = None
        self._commitment: Commitment | None = None

    def _require(self, state: ExchangeState):
        if self.state is not state:
            raise ProtocolViolation(
                f"Exchange is {self.state.value}, expected {state.value}."
            )

    @property
    def commitment(self) -> Commitment | None:
        return self._commitment

    def commit(self) -> Commitment:
        self._require(ExchangeState.UNCOMMITTED)
        self.__record = FairCommitment.generate(self.range_size, self._crypto)
        self._commitment = Commitment(mac=self.__record.mac, range_size=self.range_size)
        self.state = ExchangeState.COMMITTED
        logger.debug("Published commitment %s for range %d", self._commitment.mac, self.range_size)
        return self._commitment

    def reveal(self, counterpart_value: int) -> Reveal:
        self._require(ExchangeState.COMMITTED)
        _check_value("Counterpart value", counterpart_value, self.range_size)
        record = self.__record
        self.__record = None
        self._counterpart_value = counterpart_value
        self.state = ExchangeState.REVEALED
        return Reveal(
            key=record.key,
            secret_value=record.secret_value,
            counterpart_value=counterpart_value,
            mac=record.mac,
            range_size=self.range_size,
        )

    def settle(self, reveal: Reveal) -> int:
        self._require(ExchangeState.REVEALED)
        published = self._commitment
        if reveal.mac != published.mac or reveal.range_size != published.range_size:
            raise ProtocolViolation("Reveal does not belong to the published commitment.")
        if reveal.counterpart_value != self._counterpart_value:
            raise ProtocolViolation(
                f"Counterpart value {reveal.counterpart_value!r} differs from the "
                f"locked-in value {self._counterpart_value}."
            )
        if not FairCommitment.verify(reveal.key, reveal.secret_value, published.mac):
            raise ProtocolViolation(
                f"HMAC mismatch: value {reveal.secret_value} with key {reveal.key_hex} "
                f"does not produce {published.mac}."
            )
        result = OutcomeCombiner.combine(reveal.secret_value, reveal.counterpart_value, self.range_size)
        self.state = ExchangeState.CONSUMED
        logger.debug(
            "Settled exchange: (%d + %d) mod %d = %d",
            reveal.secret_value, reveal.counterpart_value, self.range_size, result,
        )
        return result

# ==============================================================================
# 6. Probability Calculation Logic
# ==============================================================================

@dataclass(frozen=True)
class ProbabilityResult:
    win_a: float
    win_b: float
    draw: float


@dataclass(frozen=True)
class PairProbability:
    index_a: int
    index_b: int
    die_a: Die
    die_b: Die
    result: ProbabilityResult


class ProbabilityCalculator:
    @staticmethod
    def pairwise(die_a: Die, die_b: Die) -> ProbabilityResult:
        wins_a = wins_b = draws = 0
        for f1 in die_a.faces:
            for f2 in die_b.faces:
                if f1 > f2:
                    wins_a += 1
                elif f1 < f2:
                    wins_b += 1
                else:
                    draws += 1
        total = wins_a + wins_b + draws
        return ProbabilityResult(
            win_a=round(wins_a * 100 / total, 2),
            win_b=round(wins_b * 100 / total, 2),
            draw=round(draws * 100 / total, 2),
        )

    @staticmethod
    def all_pairs(dice: Sequence[Die]) -> list[PairProbability]:
        if len(dice) < 2:
            raise ValidationError("At least two dice are needed to compare probabilities.")
        return [
            PairProbability(i, j, dice[i], dice[j], ProbabilityCalculator.pairwise(dice[i], dice[j]))
            for i in range(len(dice))
            for j in range(i + 1, len(dice))
        ]

# ==============================================================================
# 7. Help Table Generation
# ==============================================================================

class HelpTableGenerator:
    @staticmethod
    def generate_table(all_dice: list[Die], calculator: type[ProbabilityCalculator]) -> str:
        headers = ["User v PC >"] + [str(d) for d in all_dice]
        table_data = []
        for i, user_die in enumerate(all_dice):
            row = [str(user_die)]
            for j, pc_die in enumerate(all_dice):
                prob = calculator.pairwise(user_die, pc_die).win_a
                cell = f"*{prob:.2f}%*" if i == j else f"{prob:.2f}%"
                row.append(cell)
            table_data.append(row)

        pair_rows = [
            [f"Dice {p.index_a + 1} vs Dice {p.index_b + 1}",
             f"{p.result.win_a:.2f}%", f"{p.result.win_b:.2f}%", f"{p.result.draw:.2f}%"]
            for p in calculator.all_pairs(all_dice)
        ]

        intro = (
            "\n--- Win Probability Table ---\n"
            "This table shows the probability of the User's die (rows) winning against the PC's die (columns).\n"
            "* Diagonal values show probability of a die winning against an identical one.\n"
        )
        summary = "\n--- Pairwise Summary ---\n"
        return (
            intro + tabulate(table_data, headers=headers, tablefmt="grid")
            + "\n" + summary
            + tabulate(pair_rows, headers=["Pair", "Wins", "Losses", "Draws"], tablefmt="grid")
        )

# ==============================================================================
# 8. Console User Interface
# ==============================================================================

class ConsoleIO:
    def __init__(self, input_func: Callable[[str], str] | None = None,
                 output_func: Callable[[str], None] | None = None):
        self._input = input_func or input
        self._output = output_func or print

    def announce(self, text: str):
        self._output(text)

    def prompt_integer(self, prompt: str, options: list[str], allow_help: bool = False) -> int | None:
        """
        Ask the user to pick one of ``options`` by number.

        Returns the chosen index, or None when help was requested.
        Raises InputAbort when the user exits or input runs out.
        """
        while True:
            self._output(f"\n{prompt}")
            for i, option in enumerate(options):
                self._output(f" {i} - {option}")

            self._output("\n X - Exit")
            if allow_help:
                self._output(" ? - Help")

            try:
                choice = self._input("Your choice: ").strip().lower()
            except EOFError:
                self._output("\nInput ended. Goodbye!")
                raise InputAbort("Input ended.") from None

            if choice == 'x':
                self._output("Exiting game. Goodbye!")
                raise InputAbort("User exited.")
            if choice == '?' and allow_help:
                return None

            if choice.isascii() and choice.isdigit():
                choice_int = int(choice)
                if 0 <= choice_int < len(options):
                    return choice_int

            help_hint = ", '?'" if allow_help else ""
            self._output(f"Invalid choice. Please enter a valid number{help_hint} or 'X'.")

# ==============================================================================
# 9. Provably Fair Random Number Generation
# ==============================================================================

class FairInteraction:
    def __init__(self, crypto_provider: CryptoProvider, ui: ConsoleIO):
        self.crypto = crypto_provider
        self.ui = ui

    def determine_first_player(self) -> bool:
        self.ui.announce("\nLet's determine who makes the first move.")
        exchange = FairExchange(2, self.crypto)
        commitment = exchange.commit()
        self.ui.announce(f"I selected a random value in the range 0..1 (HMAC={commitment.mac}).")

        guess = self._prompt_value("Try to guess my selection.", 2)
        reveal = exchange.reveal(guess)
        self.ui.announce(f"My selection: {reveal.secret_value} (KEY={reveal.key_hex}).")
        # The guess matches exactly when (secret + guess) mod 2 == 0.
        user_goes_first = exchange.settle(reveal) == 0
        logger.debug("User goes first: %s", user_goes_first)
        return user_goes_first

    def fair_index(self, max_val: int, prompt: str) -> int:
        exchange = FairExchange(max_val, self.crypto)
        commitment = exchange.commit()
        self.ui.announce(f"I selected a random value in the range 0..{max_val - 1} (HMAC={commitment.mac}).")

        user_move = self._prompt_value(prompt, max_val)
        reveal = exchange.reveal(user_move)
        self.ui.announce(f"My number is {reveal.secret_value} (KEY={reveal.key_hex}).")
        result = exchange.settle(reveal)
        self.ui.announce(
            f"The fair number generation result is {reveal.secret_value} + {user_move} = {result} (mod {max_val})."
        )
        return result

    def _prompt_value(self, prompt: str, max_val: int) -> int:
        options = [str(i) for i in range(max_val)]
        return self.ui.prompt_integer(prompt, options, allow_help=False)

# ==============================================================================
# 10. Computer Die Selection Strategies
# ==============================================================================

class SelectionStrategy:
    name = ""

    def choose(self, available: list[Die], opponent_die: Die | None = None) -> Die:
        raise NotImplementedError


class FirstRemainingStrategy(SelectionStrategy):
    name = "first"

    def choose(self, available: list[Die], opponent_die: Die | None = None) -> Die:
        return available[0]


class RandomStrategy(SelectionStrategy):
    name = "random"

    def choose(self, available: list[Die], opponent_die: Die | None = None) -> Die:
        return secrets.choice(available)


class CounterStrategy(SelectionStrategy):
    """Pick the die with the best chance against the user's die, if one is known."""
    name = "counter"

    def __init__(self, calculator: type[ProbabilityCalculator] = ProbabilityCalculator):
        self.calculator = calculator

    def choose(self, available: list[Die], opponent_die: Die | None = None) -> Die:
        if opponent_die is None:
            return secrets.choice(available)
        return max(available, key=lambda d: self.calculator.pairwise(d, opponent_die).win_a)


STRATEGIES: dict[str, Callable[[], SelectionStrategy]] = {
    FirstRemainingStrategy.name: FirstRemainingStrategy,
    RandomStrategy.name: RandomStrategy,
    CounterStrategy.name: CounterStrategy,
}

# ==============================================================================
# 11. Configuration
# ==============================================================================

@dataclass(frozen=True)
class GameConfig:
    log_level: str = "WARNING"
    strategy: str = RandomStrategy.name

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "GameConfig":
        environ = os.environ if environ is None else environ
        log_level = environ.get("DICE_LOG_LEVEL", cls.log_level).upper()
        strategy = environ.get("DICE_STRATEGY", cls.strategy).lower()
        if not isinstance(logging.getLevelName(log_level), int):
            raise ValidationError(f"Unknown log level: {log_level}.")
        if strategy not in STRATEGIES:
            raise ValidationError(
                f"Unknown strategy: {strategy}. Choose one of: {', '.join(sorted(STRATEGIES))}."
            )
        return cls(log_level=log_level, strategy=strategy)

    def build_strategy(self) -> SelectionStrategy:
        return STRATEGIES[self.strategy]()

# ==============================================================================
# 12. Main Game Controller
# ==============================================================================

class Winner(str, Enum):
    USER = "USER"
    COMPUTER = "COMPUTER"
    DRAW = "DRAW"


@dataclass(frozen=True)
class MatchResult:
    user_first: bool
    user_die: Die
    computer_die: Die
    user_roll: int
    computer_roll: int

    @property
    def winner(self) -> Winner:
        if self.user_roll > self.computer_roll:
            return Winner.USER
        if self.computer_roll > self.user_roll:
            return Winner.COMPUTER
        return Winner.DRAW


class GameController:
    def __init__(self, dice: list[Die], ui: ConsoleIO, interaction: FairInteraction,
                 help_gen: HelpTableGenerator, strategy: SelectionStrategy):
        if len(dice) < MIN_DICE:
            raise ArgumentError.NOT_ENOUGH_DICE
        self.all_dice = dice
        self.ui = ui
        self.interaction = interaction
        self.help_gen = help_gen
        self.strategy = strategy

    def play(self) -> MatchResult:
        user_goes_first = self.interaction.determine_first_player()

        player_die, computer_die = self._select_dice(user_goes_first)

        self.ui.announce(f"\nYour die: [{player_die}]")
        self.ui.announce(f"My die:   [{computer_die}]")

        self.ui.announce("\n--- Time to roll! ---")

        self.ui.announce("\nIt is my time to roll.")
        computer_roll_value = self._roll(computer_die)
        self.ui.announce(f"Result of my roll is {computer_roll_value}.")

        self.ui.announce("\nIt is your time to roll.")
        player_roll_value = self._roll(player_die)
        self.ui.announce(f"Result of your roll is {player_roll_value}.")

        result = MatchResult(
            user_first=user_goes_first,
            user_die=player_die,
            computer_die=computer_die,
            user_roll=player_roll_value,
            computer_roll=computer_roll_value,
        )
        self.ui.announce("\n--- Results ---")
        self.ui.announce(f"You rolled {player_roll_value}, I rolled {computer_roll_value}.")
        if result.winner is Winner.USER:
            self.ui.announce(f"You won! ({player_roll_value} > {computer_roll_value})")
        elif result.winner is Winner.COMPUTER:
            self.ui.announce(f"I won! ({computer_roll_value} > {player_roll_value})")
        else:
            self.ui.announce("It's a draw!")
        return result

    def _roll(self, die: Die) -> int:
        num_faces = len(die)
        index = self.interaction.fair_index(num_faces, f"Add your number modulo {num_faces}.")
        return die.face_at(index)

    def _select_dice(self, user_goes_first: bool) -> tuple[Die, Die]:
        available_dice = list(self.all_dice)
        if user_goes_first:
            self.ui.announce("You make the first move and choose the dice.")
            player_die = self._get_player_die_choice(available_dice)
            available_dice.remove(player_die)
            computer_die = self.strategy.choose(available_dice, player_die)
            self.ui.announce(f"I choose the [{computer_die}] dice.")
        else:
            self.ui.announce("I make the first move and choose the dice.")
            computer_die = self.strategy.choose(available_dice, None)
            available_dice.remove(computer_die)
            self.ui.announce(f"I choose the [{computer_die}] dice.")
            player_die = self._get_player_die_choice(available_dice)
        logger.debug("Strategy %r picked %s", self.strategy.name, computer_die)
        return player_die, computer_die

    def _get_player_die_choice(self, available_dice: list[Die]) -> Die:
        while True:
            options = [str(d) for d in available_dice]
            choice = self.ui.prompt_integer("Choose your dice:", options, allow_help=True)
            if choice is None:
                table = self.help_gen.generate_table(self.all_dice, ProbabilityCalculator)
                self.ui.announce(table)
                continue
            return available_dice[choice]

# ==============================================================================
# 13. Main Execution Block
# ==============================================================================

def main():
    try:
        # Dynamically determine the command used to invoke the script
        if 'py.exe' in sys.executable.lower():
            ArgumentError.set_invocation_command('py')
        else:
            ArgumentError.set_invocation_command('python')

        config = GameConfig.from_env()
        logging.basicConfig(
            level=config.log_level,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
            stream=sys.stderr,
        )

        args = sys.argv[1:]
        dice = DiceParser.parse(args)

        ui = ConsoleIO()
        crypto = CryptoProvider()
        help_gen = HelpTableGenerator()
        interaction = FairInteraction(crypto, ui)

        controller = GameController(dice, ui, interaction, help_gen, config.build_strategy())
        ui.announce("--- Welcome to the Non-Transitive Dice Game! ---")
        controller.play()

    except ValidationError as e:
        print(e, file=sys.stderr)
        sys.exit(1)
    except ProtocolViolation as e:
        print(f"\nProtocol violation, the result is void: {e}", file=sys.stderr)
        sys.exit(2)
    except InputAbort as e:
        logger.info("Match aborted: %s", e)
        sys.exit(0)
    except KeyboardInterrupt:
        print("\nGame interrupted. Goodbye!")
        sys.exit(0)

if __name__ == "__main__":
    main()
