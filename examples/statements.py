# A tiny statement language, mostly to show off the repetition helpers.
from llparse import *


@rule
def program():
    return one_or_more(statement)


@rule
def statement():
    return let_statement | print_statement


@rule
def let_statement():
    return seq(LET, NAME, EQUAL, value, SEMICOLON)


@rule
def print_statement():
    return seq(PRINT, print_arguments, SEMICOLON)


@rule
def print_arguments():
    return opt(value, zero_or_more(COMMA, value))


@rule
def value():
    return NAME | NUMBER


LET = Terminal("let")
PRINT = Terminal("print")
EQUAL = Terminal("=")
COMMA = Terminal(",")
SEMICOLON = Terminal(";")
NAME = Terminal("NAME")
NUMBER = Terminal("NUMBER")

StatementGrammar = Grammar.from_rule(program)
