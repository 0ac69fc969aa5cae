# The grammar from the Wikipedia article on LL parsers, written as a plain
# list of productions.
from llparse import EMPTY, Grammar


TextbookGrammar = Grammar(
    "S",
    [
        ("S", ["a", "A", "B", "b"]),
        ("A", ["a", "A", "c"]),
        ("A", [EMPTY]),
        ("B", ["b", "B"]),
        ("B", ["c"]),
    ],
)
