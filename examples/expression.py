# Arithmetic expressions, with the left recursion taken out so that they can
# be parsed top-down. `E -> E + T` becomes `E -> T E'` and `E' -> + T E' | ε`.
from llparse import *


@rule
def expression():
    return seq(term, expression_tail)


@rule
def expression_tail():
    return opt(PLUS, term, expression_tail)


@rule
def term():
    return seq(factor, term_tail)


@rule
def term_tail():
    return opt(STAR, factor, term_tail)


@rule
def factor():
    return seq(LPAREN, expression, RPAREN) | ID


PLUS = Terminal("+")
STAR = Terminal("*")
LPAREN = Terminal("(")
RPAREN = Terminal(")")
ID = Terminal("id")

ExpressionGrammar = Grammar.from_rule(expression)
