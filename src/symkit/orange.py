"""Parser for `Orange <https://orange3.readthedocs.io/>`_-style CN2 decision lists.

Each line of a decision list reads::

    [49, 0, 0] IF petal length<=3.0 AND sepal width>=2.9 THEN iris=Iris-setosa  -0.0

that is, the per-class distribution of the examples covered by the rule, the
antecedent (`TRUE`, or clauses joined by `AND`), the predicted `variable=value`
and the rule's quality score. The last line is the default rule
(`IF TRUE`), whose distribution is the grand total of the training examples.

Reference: https://orange3.readthedocs.io/projects/orange-visual-programming/en/latest/widgets/model/cn2ruleinduction.html
"""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from enum import StrEnum
from pathlib import Path
from typing import Final, NamedTuple

from loguru import logger

from symkit.exceptions import (
    CoverageUnderflowError,
    MalformedInputError,
    MalformedLineError,
    MissingDefaultRuleError,
)
from symkit.logic import (
    Atom,
    ComparisonOp,
    Conjunction,
    ScalarCondition,
    VariableValue,
    parse_threshold,
)
from symkit.models import ConstantModel, DecisionList, ModelInfo, Rule
from symkit.settings import get_settings

# ---------------------------------------------------------------------------
# Grammar literals
# ---------------------------------------------------------------------------

# Two-character operators come first so that "<=" is never read as "<".
COMPARISON_OPERATORS: Final[tuple[ComparisonOp, ...]] = ("<=", ">=", "==", "!=", "<", ">")

_SPACE: Final[str] = " "
_UNDERSCORE: Final[str] = "_"

_INTEGER_PATTERN: Final[re.Pattern[str]] = re.compile(r"\d+")
_EVALUATION_PATTERN: Final[re.Pattern[str]] = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")


class TokenKind(StrEnum):
    """Kinds of tokens produced by `tokenize_line`."""

    LBRACKET = "["
    RBRACKET = "]"
    COMMA = ","
    INTEGER = "integer"
    IF = "IF"
    THEN = "THEN"
    AND = "AND"
    TRUE = "TRUE"
    WORD = "word"


_KEYWORDS: Final[dict[str, TokenKind]] = {
    TokenKind.IF.value: TokenKind.IF,
    TokenKind.THEN.value: TokenKind.THEN,
    TokenKind.AND.value: TokenKind.AND,
    TokenKind.TRUE.value: TokenKind.TRUE,
}


class Token(NamedTuple):
    """A lexical token of one decision-list line.

    Attributes:
        kind (TokenKind): Token kind.
        text (str): The token's source text.
        start (int): 0-based offset of the first character in the line.
        end (int): 0-based offset one past the last character.
    """

    kind: TokenKind
    text: str
    start: int
    end: int

    @property
    def column(self) -> int:
        """1-based column of the token."""
        return self.start + 1


class ParsedCondition(NamedTuple):
    """One `<name><op><threshold>` clause, names already normalized."""

    variable: str
    operator: ComparisonOp
    threshold: str


class ParsedLine(NamedTuple):
    """The content of one decision-list line.

    Attributes:
        distribution (tuple[int, ...]): Per-class counts in brackets.
        conditions (tuple[ParsedCondition, ...]): Antecedent clauses; empty for `TRUE`.
        is_default (bool): Whether the antecedent is `TRUE`.
        target (str): The predicted variable's name.
        value (str): The predicted value.
        evaluation (float): The rule's quality score.
    """

    distribution: tuple[int, ...]
    conditions: tuple[ParsedCondition, ...]
    is_default: bool
    target: str
    value: str
    evaluation: float


# ---------------------------------------------------------------------------
# Lexer
# ---------------------------------------------------------------------------


def tokenize_line(line: str, *, line_number: int = 1) -> list[Token]:
    """Split one decision-list line into tokens.

    The leading bracketed distribution is lexed into bracket, comma and
    integer tokens. The rest of the line is split on whitespace into words,
    and the words `IF`, `THEN`, `AND` and `TRUE` become keyword tokens.

    Args:
        line (str): The raw line.
        line_number (int): 1-based line number, used in error reports.

    Returns:
        list[Token]: Tokens in source order.

    Raises:
        MalformedLineError: If the distribution is not a bracketed list of
            non-negative integers.

    Examples:
        >>> [token.text for token in tokenize_line("[3,0] IF x>=1.0 THEN y=A -0.0")]
        ['[', '3', ',', '0', ']', 'IF', 'x>=1.0', 'THEN', 'y=A', '-0.0']
    """

    def fail(reason: str, position: int) -> MalformedLineError:
        return MalformedLineError(reason=reason, line=line, line_number=line_number, column=position + 1)

    tokens: list[Token] = []
    position = _skip_spaces(line, 0)
    if position >= len(line) or line[position] != "[":
        raise fail("expected '[' opening the class distribution", position)
    tokens.append(Token(TokenKind.LBRACKET, "[", position, position + 1))
    position += 1

    expect_integer = True
    while True:
        position = _skip_spaces(line, position)
        if position >= len(line):
            raise fail("expected ']' closing the class distribution", position)
        char = line[position]
        if expect_integer:
            match = _INTEGER_PATTERN.match(line, position)
            if match is None:
                raise fail("expected a non-negative integer", position)
            tokens.append(Token(TokenKind.INTEGER, match.group(), match.start(), match.end()))
            position = match.end()
            expect_integer = False
        elif char == ",":
            tokens.append(Token(TokenKind.COMMA, char, position, position + 1))
            position += 1
            expect_integer = True
        elif char == "]":
            tokens.append(Token(TokenKind.RBRACKET, char, position, position + 1))
            position += 1
            break
        else:
            raise fail("expected ',' or ']' in the class distribution", position)

    for match in re.finditer(r"\S+", line[position:]):
        start, end = position + match.start(), position + match.end()
        word = match.group()
        tokens.append(Token(_KEYWORDS.get(word, TokenKind.WORD), word, start, end))
    return tokens


def _skip_spaces(line: str, position: int) -> int:
    """Advance past whitespace.

    Args:
        line (str): The raw line.
        position (int): 0-based start position.

    Returns:
        int: Position of the next non-space character, or `len(line)`.
    """
    while position < len(line) and line[position].isspace():
        position += 1
    return position


# ---------------------------------------------------------------------------
# Line parser
# ---------------------------------------------------------------------------


def parse_line(line: str, *, line_number: int = 1) -> ParsedLine:
    """Parse one decision-list line.

    Args:
        line (str): The raw line.
        line_number (int): 1-based line number, used in error reports.

    Returns:
        ParsedLine: The line's distribution, clauses, prediction and score.

    Raises:
        MalformedLineError: If the line does not match the grammar.

    Examples:
        >>> parsed = parse_line("[0, 0, 39] IF petal width>=1.8 THEN iris=Iris-virginica  -0.0")
        >>> parsed.distribution, parsed.conditions[0].variable, parsed.value
        ((0, 0, 39), 'petal_width', 'Iris-virginica')
    """

    def fail(reason: str, column: int) -> MalformedLineError:
        return MalformedLineError(reason=reason, line=line, line_number=line_number, column=column)

    tokens = tokenize_line(line, line_number=line_number)
    closing = next(index for index, token in enumerate(tokens) if token.kind is TokenKind.RBRACKET)
    distribution = tuple(int(token.text) for token in tokens[:closing] if token.kind is TokenKind.INTEGER)
    rest = tokens[closing + 1 :]

    if not rest or rest[0].kind is not TokenKind.IF:
        raise fail("expected 'IF'", rest[0].column if rest else len(line) + 1)

    then_index = next((index for index, token in enumerate(rest) if token.kind is TokenKind.THEN), None)
    if then_index is None:
        raise fail("expected 'THEN'", len(line) + 1)

    antecedent_tokens = rest[1:then_index]
    if not antecedent_tokens:
        raise fail("expected an antecedent between 'IF' and 'THEN'", rest[then_index].column)

    is_default = len(antecedent_tokens) == 1 and antecedent_tokens[0].kind is TokenKind.TRUE
    conditions: tuple[ParsedCondition, ...] = ()
    if not is_default:
        conditions = tuple(_parse_conjunction(line, antecedent_tokens, fail))

    target, value, evaluation = _parse_consequent(line, rest[then_index], rest[then_index + 1 :], fail)
    return ParsedLine(
        distribution=distribution,
        conditions=conditions,
        is_default=is_default,
        target=target,
        value=value,
        evaluation=evaluation,
    )


def _parse_conjunction(
    line: str,
    tokens: Sequence[Token],
    fail: Callable[[str, int], MalformedLineError],
) -> list[ParsedCondition]:
    """Split antecedent tokens on `AND` and parse each clause.

    Args:
        line (str): The raw line, for recovering clause text with its spaces.
        tokens (Sequence[Token]): Tokens strictly between `IF` and `THEN`.
        fail (Callable[[str, int], MalformedLineError]): Error factory for this line.

    Returns:
        list[ParsedCondition]: One condition per clause, in order.

    Raises:
        MalformedLineError: On empty clauses, `TRUE` inside a conjunction, or
            clauses without an operator, name or threshold.
    """
    clauses: list[list[Token]] = [[]]
    for token in tokens:
        if token.kind is TokenKind.AND:
            if not clauses[-1]:
                raise fail("expected a condition before 'AND'", token.column)
            clauses.append([])
        elif token.kind is TokenKind.TRUE:
            raise fail("'TRUE' cannot be conjoined with other conditions", token.column)
        else:
            clauses[-1].append(token)
    if not clauses[-1]:
        raise fail("expected a condition after 'AND'", tokens[-1].end + 1)

    return [_parse_condition(line[clause[0].start : clause[-1].end], clause[0].column, fail) for clause in clauses]


def _parse_condition(
    clause: str,
    column: int,
    fail: Callable[[str, int], MalformedLineError],
) -> ParsedCondition:
    """Parse `<name><op><threshold>`, matching the leftmost operator, longest first.

    Spaces in the name and in the threshold are replaced by underscores.

    Args:
        clause (str): The clause text.
        column (int): 1-based column of the clause in its line.
        fail (Callable[[str, int], MalformedLineError]): Error factory for this line.

    Returns:
        ParsedCondition: The normalized clause.

    Raises:
        MalformedLineError: If the clause has no operator, name or threshold.
    """
    for position in range(len(clause)):
        operator = next((op for op in COMPARISON_OPERATORS if clause.startswith(op, position)), None)
        if operator is None:
            continue
        name = clause[:position].strip()
        threshold = clause[position + len(operator) :].strip()
        if not name:
            raise fail("expected a variable name before the operator", column + position)
        if not threshold:
            raise fail("expected a threshold after the operator", column + position + len(operator))
        return ParsedCondition(
            variable=name.replace(_SPACE, _UNDERSCORE),
            operator=operator,
            threshold=threshold.replace(_SPACE, _UNDERSCORE),
        )
    raise fail(f"expected one of {list(COMPARISON_OPERATORS)} in condition {clause!r}", column)


def _parse_consequent(
    line: str,
    then_token: Token,
    tokens: Sequence[Token],
    fail: Callable[[str, int], MalformedLineError],
) -> tuple[str, str, float]:
    """Parse `<var>=<value> <signed-float>` after `THEN`.

    Args:
        line (str): The raw line, for recovering the value with its spaces.
        then_token (Token): The `THEN` token.
        tokens (Sequence[Token]): Tokens after `THEN`.
        fail (Callable[[str, int], MalformedLineError]): Error factory for this line.

    Returns:
        tuple[str, str, float]: Target variable, predicted value and score.

    Raises:
        MalformedLineError: If the prediction or the score is missing or malformed.
    """
    if len(tokens) < 2:
        raise fail("expected '<variable>=<value> <score>' after 'THEN'", then_token.end + 2)

    *prediction_tokens, score_token = tokens
    if _EVALUATION_PATTERN.fullmatch(score_token.text) is None:
        raise fail("expected a signed decimal score", score_token.column)

    prediction = line[prediction_tokens[0].start : prediction_tokens[-1].end]
    target, equals, value = prediction.partition("=")
    target, value = target.strip(), value.strip()
    if not equals or not target or not value:
        raise fail("expected '<variable>=<value>' after 'THEN'", prediction_tokens[0].column)
    return target, value, float(score_token.text)


# ---------------------------------------------------------------------------
# Decision-list parser
# ---------------------------------------------------------------------------


def parse_orange_decision_list(
    text: str,
    *,
    ignore_default_rule: bool = False,
    feature_type: Callable[..., VariableValue] = VariableValue,
    strict_coverage: bool | None = None,
) -> DecisionList:
    """Build a DecisionList from an Orange-style decision list.

    Every non-default line becomes a `Rule` whose consequent carries the
    line's own distribution (`supporting_labels`) and score
    (`orange_evaluation`), and whose own info carries the distribution still
    uncovered before it (`uncovered_distribution`). The running uncovered
    distribution starts from the last line's distribution and loses each
    rule's distribution in turn. The `TRUE` line ends the list; lines after
    it are ignored.

    Args:
        text (str): The decision list, one rule per line.
        ignore_default_rule (bool): Drop the `TRUE` line's outcome and use the
            last rule's consequent as the default instead, removing that rule.
        feature_type (Callable[..., VariableValue]): Called as
            `feature_type(name=...)` to build each condition's feature.
        strict_coverage (bool | None): Raise `CoverageUnderflowError` when a rule
            covers more examples than remain uncovered, instead of logging a
            warning and keeping negative counts. `None` uses
            `SymkitSettings.strict_coverage`.

    Returns:
        DecisionList: The parsed list.

    Raises:
        MalformedLineError: If a line does not match the grammar, or its
            distribution does not have as many classes as the last line's.
        MissingDefaultRuleError: If no `TRUE` line is found.
        CoverageUnderflowError: On accumulator underflow in strict mode.
        MalformedInputError: If `ignore_default_rule` is set but the `TRUE`
            line has no rule before it.

    Examples:
        >>> model = parse_orange_decision_list(
        ...     "[3,0] IF x>=1.0 THEN y=A  -0.0\\n[0,3] IF TRUE THEN y=B  -1.0\\n"
        ... )
        >>> print(model)
        ▣
        ├[1/1]┐(x >= 1.0)
        │└ A
        └✘ B
    """
    if strict_coverage is None:
        strict_coverage = get_settings().strict_coverage

    lines = [(number, line) for number, line in enumerate(text.splitlines(), start=1) if line.strip()]
    if not lines:
        raise MissingDefaultRuleError

    last_number, last_line = lines[-1]
    uncovered = _parse_distribution(last_line, line_number=last_number)

    rulebase: list[Rule] = []
    default_consequent: ConstantModel | None = None
    for line_number, line in lines:
        parsed = parse_line(line, line_number=line_number)

        if parsed.is_default:
            default_consequent = ConstantModel(
                outcome=parsed.value,
                info=ModelInfo(orange_evaluation=parsed.evaluation),
            )
            if ignore_default_rule and not rulebase:
                raise MalformedInputError(
                    "Cannot ignore the default rule: no rule precedes it",
                    line=line,
                    line_number=line_number,
                )
            break

        if len(parsed.distribution) != len(uncovered):
            raise MalformedLineError(
                reason=f"expected {len(uncovered)} class counts, found {len(parsed.distribution)}",
                line=line,
                line_number=line_number,
                column=line.index("[") + 1,
            )

        antecedent = Conjunction.of(*[
            ScalarCondition(
                feature=feature_type(name=condition.variable),
                operator=condition.operator,
                threshold=parse_threshold(condition.threshold),
            )
            for condition in parsed.conditions
        ])
        consequent = ConstantModel(
            outcome=parsed.value,
            info=ModelInfo(orange_evaluation=parsed.evaluation, supporting_labels=parsed.distribution),
        )
        rulebase.append(
            Rule(antecedent=antecedent, consequent=consequent, info=ModelInfo(uncovered_distribution=uncovered))
        )
        logger.debug("Parsed rule", line_number=line_number, outcome=parsed.value, distribution=parsed.distribution)

        uncovered = _subtract_distribution(
            uncovered,
            parsed.distribution,
            line=line,
            line_number=line_number,
            strict_coverage=strict_coverage,
        )

    if default_consequent is None:
        raise MissingDefaultRuleError

    decision_list = DecisionList(rulebase=tuple(rulebase), default_consequent=default_consequent)
    if ignore_default_rule:
        decision_list = decision_list.fold_last_rule()

    logger.info(
        "Parsed Orange decision list",
        n_rules=decision_list.nrules,
        default=str(decision_list.default_consequent),
        ignore_default_rule=ignore_default_rule,
    )
    return decision_list


def parse_orange_decision_list_file(path: str | Path, **kwargs: object) -> DecisionList:
    """Read a UTF-8 file and parse it with `parse_orange_decision_list`.

    Args:
        path (str | Path): Path of the decision-list file.
        **kwargs (object): Keyword arguments forwarded to `parse_orange_decision_list`.

    Returns:
        DecisionList: The parsed list.
    """
    text = Path(path).read_text(encoding="utf-8")
    return parse_orange_decision_list(text, **kwargs)  # type: ignore[arg-type]


def _parse_distribution(line: str, *, line_number: int) -> tuple[int, ...]:
    """Read only the bracketed distribution at the start of a line.

    Args:
        line (str): The raw line.
        line_number (int): 1-based line number, used in error reports.

    Returns:
        tuple[int, ...]: The per-class counts.
    """
    tokens = tokenize_line(line, line_number=line_number)
    closing = next(index for index, token in enumerate(tokens) if token.kind is TokenKind.RBRACKET)
    return tuple(int(token.text) for token in tokens[:closing] if token.kind is TokenKind.INTEGER)


def _subtract_distribution(
    uncovered: tuple[int, ...],
    covered: tuple[int, ...],
    *,
    line: str,
    line_number: int,
    strict_coverage: bool,
) -> tuple[int, ...]:
    """Remove a rule's covered counts from the uncovered distribution.

    Args:
        uncovered (tuple[int, ...]): Counts uncovered before the rule.
        covered (tuple[int, ...]): Counts covered by the rule.
        line (str): The rule's raw line.
        line_number (int): The rule's 1-based line number.
        strict_coverage (bool): Raise instead of warning on negative counts.

    Returns:
        tuple[int, ...]: Counts uncovered after the rule; may be negative.

    Raises:
        CoverageUnderflowError: On negative counts when `strict_coverage` is set.
    """
    remaining = tuple(left - right for left, right in zip(uncovered, covered, strict=True))
    if any(count < 0 for count in remaining):
        if strict_coverage:
            raise CoverageUnderflowError(
                line=line,
                line_number=line_number,
                uncovered_distribution=uncovered,
                rule_distribution=covered,
            )
        logger.warning(
            "Rule covers more examples than remain uncovered; keeping negative counts",
            line_number=line_number,
            uncovered=uncovered,
            covered=covered,
        )
    return remaining
