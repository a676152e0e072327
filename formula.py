"""
Propositional Formula Algebra
=============================

Immutable boolean expression trees used for variability model constraints
and feature effects:

- Variable, Negation, Conjunction, Disjunction
- the constants TRUE and FALSE

Formulas render in the classic preprocessor-condition syntax
(``!A``, ``A && B``, ``A || B``, ``1``, ``0``) and can be parsed back
from that syntax with ``parse_formula``.
"""

import re
from dataclasses import dataclass
from typing import List, Set, Union


class FormulaSyntaxError(ValueError):
    """Raised when a textual formula cannot be parsed."""


@dataclass(frozen=True)
class Variable:
    name: str

    def __str__(self):
        return render(self)


@dataclass(frozen=True)
class Negation:
    operand: "Formula"

    def __str__(self):
        return render(self)


@dataclass(frozen=True)
class Conjunction:
    left: "Formula"
    right: "Formula"

    def __str__(self):
        return render(self)


@dataclass(frozen=True)
class Disjunction:
    left: "Formula"
    right: "Formula"

    def __str__(self):
        return render(self)


@dataclass(frozen=True)
class Constant:
    value: bool

    def __str__(self):
        return render(self)


Formula = Union[Variable, Negation, Conjunction, Disjunction, Constant]

TRUE = Constant(True)
FALSE = Constant(False)


# ============================================================================
# Builders
# ============================================================================

def _as_formula(operand) -> Formula:
    if isinstance(operand, str):
        return Variable(operand)
    if isinstance(operand, (Variable, Negation, Conjunction, Disjunction, Constant)):
        return operand
    raise TypeError(f"Not a formula: {operand!r}")


def var(name: str) -> Variable:
    return Variable(name)


def not_(operand) -> Negation:
    return Negation(_as_formula(operand))


def and_(first, second, *rest) -> Conjunction:
    """Left-nested conjunction of two or more operands (names or formulas)."""
    result = Conjunction(_as_formula(first), _as_formula(second))
    for operand in rest:
        result = Conjunction(result, _as_formula(operand))
    return result


def or_(first, second, *rest) -> Disjunction:
    """Left-nested disjunction of two or more operands (names or formulas)."""
    result = Disjunction(_as_formula(first), _as_formula(second))
    for operand in rest:
        result = Disjunction(result, _as_formula(operand))
    return result


# ============================================================================
# Queries
# ============================================================================

def free_variables(formula: Formula) -> Set[str]:
    """Return the names of all variables occurring in ``formula``."""
    names = set()
    stack = [formula]
    while stack:
        node = stack.pop()
        if isinstance(node, Variable):
            names.add(node.name)
        elif isinstance(node, Negation):
            stack.append(node.operand)
        elif isinstance(node, (Conjunction, Disjunction)):
            stack.append(node.left)
            stack.append(node.right)
        elif not isinstance(node, Constant):
            raise TypeError(f"Unknown formula node: {node!r}")
    return names


def is_true(formula: Formula) -> bool:
    """Structural check for the constant TRUE (no semantic tautology test)."""
    return isinstance(formula, Constant) and formula.value


def is_false(formula: Formula) -> bool:
    return isinstance(formula, Constant) and not formula.value


def negated_variables(formula: Formula) -> Set[str]:
    """
    Names occurring under an odd number of negations, i.e. the variables
    that appear as negative literals once ``formula`` is in negation normal
    form. For a conjunction of clauses these are exactly the negated literals
    of the clauses.
    """
    names = set()
    stack = [(formula, False)]
    while stack:
        node, negated = stack.pop()
        if isinstance(node, Variable):
            if negated:
                names.add(node.name)
        elif isinstance(node, Negation):
            stack.append((node.operand, not negated))
        elif isinstance(node, (Conjunction, Disjunction)):
            stack.append((node.left, negated))
            stack.append((node.right, negated))
        elif not isinstance(node, Constant):
            raise TypeError(f"Unknown formula node: {node!r}")
    return names


# ============================================================================
# Rendering
# ============================================================================

# Binding strength: higher binds tighter
_PRECEDENCE = {Disjunction: 1, Conjunction: 2, Negation: 3, Variable: 4, Constant: 4}

_OPERATORS = {Conjunction: " && ", Disjunction: " || "}


def render(formula: Formula) -> str:
    """Render ``formula`` in canonical text form; TRUE renders as ``1``."""
    parts = []
    # Items are either text to emit or (node, precedence of the enclosing operator)
    stack = [(formula, 0)]
    while stack:
        item = stack.pop()
        if isinstance(item, str):
            parts.append(item)
            continue
        node, parent_precedence = item
        precedence = _PRECEDENCE.get(type(node))
        if precedence is None:
            raise TypeError(f"Unknown formula node: {node!r}")
        if precedence < parent_precedence:
            stack.extend([")", (node, 0), "("])
        elif isinstance(node, Variable):
            parts.append(node.name)
        elif isinstance(node, Constant):
            parts.append("1" if node.value else "0")
        elif isinstance(node, Negation):
            stack.extend([(node.operand, precedence), "!"])
        else:
            stack.extend([(node.right, precedence), _OPERATORS[type(node)], (node.left, precedence)])
    return "".join(parts)


# ============================================================================
# Parsing
# ============================================================================

_TOKEN_PATTERN = re.compile(r"\s*(?:(&&)|(\|\|)|(!)|(\()|(\))|([A-Za-z_][A-Za-z0-9_]*)|([01]))")


def _tokenize(text: str) -> List[str]:
    tokens = []
    position = 0
    text = text.rstrip()
    while position < len(text):
        match = _TOKEN_PATTERN.match(text, position)
        if match is None:
            raise FormulaSyntaxError(f"Unexpected character at position {position} in {text!r}")
        tokens.append(match.group(match.lastindex))
        position = match.end()
    return tokens


# Maximum parenthesis depth accepted by the parser
MAX_NESTING = 100


class _Parser:
    """Recursive descent over: or := and ('||' and)*; and := unary ('&&' unary)*."""

    def __init__(self, text: str):
        self.text = text
        self.tokens = _tokenize(text)
        self.index = 0
        self.depth = 0

    def _peek(self):
        return self.tokens[self.index] if self.index < len(self.tokens) else None

    def _take(self):
        token = self._peek()
        if token is None:
            raise FormulaSyntaxError(f"Unexpected end of formula {self.text!r}")
        self.index += 1
        return token

    def parse(self) -> Formula:
        if not self.tokens:
            raise FormulaSyntaxError("Empty formula")
        result = self._disjunction()
        if self._peek() is not None:
            raise FormulaSyntaxError(f"Unexpected token {self._peek()!r} in {self.text!r}")
        return result

    def _disjunction(self) -> Formula:
        result = self._conjunction()
        while self._peek() == "||":
            self._take()
            result = Disjunction(result, self._conjunction())
        return result

    def _conjunction(self) -> Formula:
        result = self._unary()
        while self._peek() == "&&":
            self._take()
            result = Conjunction(result, self._unary())
        return result

    def _unary(self) -> Formula:
        negations = 0
        token = self._take()
        while token == "!":
            negations += 1
            token = self._take()

        if token == "(":
            self.depth += 1
            if self.depth > MAX_NESTING:
                raise FormulaSyntaxError(f"Parentheses nested deeper than {MAX_NESTING} in {self.text!r}")
            result = self._disjunction()
            if self._take() != ")":
                raise FormulaSyntaxError(f"Missing ')' in {self.text!r}")
            self.depth -= 1
        elif token == "1":
            result = TRUE
        elif token == "0":
            result = FALSE
        elif token in ("&&", "||", ")"):
            raise FormulaSyntaxError(f"Unexpected token {token!r} in {self.text!r}")
        else:
            result = Variable(token)

        for _ in range(negations):
            result = Negation(result)
        return result


def parse_formula(text: str) -> Formula:
    """Parse the syntax produced by ``render``."""
    return _Parser(text).parse()
