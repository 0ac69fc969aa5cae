import json
import math
import re

from hypothesis import example, given
from hypothesis.strategies import composite, lists, sampled_from

import llparse.runtime as runtime

from llparse import EMPTY, END, Grammar

from examples.expression import ExpressionGrammar
from examples.statements import StatementGrammar
from examples.textbook import TextbookGrammar


TEXTBOOK_TABLE = TextbookGrammar.build_table()


def _tree(treeform, count=0) -> runtime.Tree:
    """Build an expected tree out of nested tuples, where every terminal
    covers one token and every EMPTY covers none.
    """
    if isinstance(treeform, str):
        width = 0 if treeform == EMPTY else 1
        return runtime.Tree(treeform, count, count + width, ())
    else:
        assert isinstance(treeform, tuple)
        name = treeform[0]
        assert isinstance(name, str)

        start = end = count

        children = []
        for x in treeform[1:]:
            child = _tree(x, end)
            end = child.end
            children.append(child)

        return runtime.Tree(value=name, start=start, end=end, children=tuple(children))


def test_textbook_parse():
    tree, error = runtime.Parser(TEXTBOOK_TABLE).parse(list("aacbbcb"))

    assert error is None
    assert tree == _tree(
        (
            "S",
            "a",
            ("A", "a", ("A", EMPTY), "c"),
            ("B", "b", ("B", "b", ("B", "c"))),
            "b",
        )
    )
    assert [child.value for child in tree.children] == ["a", "A", "B", "b"]
    assert tree.leaves() == list("aacbbcb")


def test_textbook_shortest_sentence():
    tree, error = runtime.Parser(TEXTBOOK_TABLE).parse(["a", "c", "b"])

    assert error is None
    assert tree == _tree(("S", "a", ("A", EMPTY), ("B", "c"), "b"))


def test_nested_empty_leaf_spans():
    tree, _ = runtime.Parser(TEXTBOOK_TABLE).parse(list("aaaccbcb"))

    assert tree is not None
    inner = tree.children[1].children[1].children[1]
    assert inner.value == "A"
    assert inner.children == (runtime.Tree(EMPTY, 3, 3, ()),)
    assert (inner.start, inner.end) == (3, 3)


def test_missing_table_entry():
    tree, error = runtime.Parser(TEXTBOOK_TABLE).parse(["a", "b"])

    assert tree is None
    assert error is not None
    assert error.position == 2
    assert error.token == END
    assert error.stack == ("b", "B")
    assert error.expected == ("b", "c")
    assert error.message == "Syntax Error: Unexpected end of input while parsing B"
    assert str(error) == "2: Syntax Error: Unexpected end of input while parsing B"


def test_terminal_mismatch():
    tree, error = runtime.Parser(TEXTBOOK_TABLE).parse(list("accb"))

    assert tree is None
    assert error is not None
    assert error.position == 2
    assert error.token == "c"
    assert error.stack == ("b",)
    assert error.expected == ("b",)
    assert error.message == "Syntax Error: Unexpected c, expected b"


def test_trailing_input():
    tree, error = runtime.Parser(TEXTBOOK_TABLE).parse(list("acbb"))

    assert tree is None
    assert error is not None
    assert error.position == 3
    assert error.token == "b"
    assert error.stack == ()
    assert error.expected == (END,)
    assert error.message == "Syntax Error: Unexpected b, expected end of input"


def test_empty_input():
    tree, error = runtime.Parser(TEXTBOOK_TABLE).parse([])

    assert tree is None
    assert error is not None
    assert error.position == 0
    assert error.stack == ("S",)
    assert error.expected == ("a",)


def test_unknown_token():
    tree, error = runtime.Parser(TEXTBOOK_TABLE).parse(["a", "x", "b"])

    assert tree is None
    assert error is not None
    assert error.position == 1
    assert error.token == "x"
    assert error.message == "Syntax Error: Unknown token 'x'"


def test_markers_are_not_tokens():
    for marker in [END, EMPTY]:
        _, error = runtime.Parser(TEXTBOOK_TABLE).parse(["a", marker, "c", "b"])
        assert error is not None
        assert error.position == 1


def test_expression_parse():
    tree, error = runtime.parse(ExpressionGrammar, ["id", "+", "id", "*", "id"])

    assert error is None
    assert tree == _tree(
        (
            "expression",
            ("term", ("factor", "id"), ("term_tail", EMPTY)),
            (
                "expression_tail",
                "+",
                (
                    "term",
                    ("factor", "id"),
                    ("term_tail", "*", ("factor", "id"), ("term_tail", EMPTY)),
                ),
                ("expression_tail", EMPTY),
            ),
        )
    )


def test_expression_parentheses():
    tokens = ["(", "id", "+", "id", ")", "*", "id"]
    tree, error = runtime.parse(ExpressionGrammar, tokens)

    assert error is None
    assert tree is not None
    assert tree.leaves() == tokens

    factor = tree.children[0].children[0]
    assert factor.value == "factor"
    assert [c.value for c in factor.children] == ["(", "expression", ")"]
    assert (factor.start, factor.end) == (0, 5)


def test_expression_unbalanced():
    _, error = runtime.parse(ExpressionGrammar, ["(", "id", "+", "id"])

    assert error is not None
    assert error.position == 4
    assert error.token == END
    assert error.message == "Syntax Error: Unexpected end of input, expected )"


def test_statement_parse():
    tokens = "let NAME = NUMBER ; print NAME , NUMBER , NAME ; print ;".split()
    tree, error = runtime.parse(StatementGrammar, tokens)

    assert error is None
    assert tree is not None
    assert tree.value == "program"
    assert [c.value for c in tree.children] == ["statement", "__gen_program_0"]
    assert tree.children[0].children[0].value == "let_statement"
    assert tree.leaves() == tokens


def test_statement_needs_one():
    _, error = runtime.parse(StatementGrammar, [])

    assert error is not None
    assert error.expected == ("let", "print")


def test_grammar_or_table():
    tokens = list("acb")
    assert runtime.parse(TextbookGrammar, tokens) == runtime.parse(TEXTBOOK_TABLE, tokens)


def test_table_is_shared_between_parses():
    table = TextbookGrammar.build_table()
    before = {nt: dict(row) for nt, row in table.rows.items()}

    parser = runtime.Parser(table)
    first, _ = parser.parse(list("aacbbcb"))
    _, error = parser.parse(list("ab"))
    second, _ = parser.parse(list("aacbbcb"))

    assert error is not None
    assert first == second
    assert table.rows == before


def test_deep_tree():
    tokens = ["a"] + ["b"] * 2000 + ["c", "b"]
    tree, error = runtime.Parser(TEXTBOOK_TABLE).parse(tokens)

    assert error is None
    assert tree is not None
    assert tree.leaves() == tokens

    lines = tree.format_lines()
    assert len(lines) == 4007
    assert lines[0] == "S [0, 2003)"
    assert lines[-2] == (" " * 4004) + "c [2001, 2002)"
    assert lines[-1] == "  b [2002, 2003)"
    assert tree.format() == "\n".join(lines)

    count = 0
    b_nodes = 0
    stack = [tree.to_json()]
    while len(stack) > 0:
        node = stack.pop()
        count += 1
        if node["value"] == "B":
            b_nodes += 1
        stack.extend(node["children"])
    assert count == 4007
    assert b_nodes == 2001

    text = tree.to_json_text()
    assert text.startswith(
        '{"value": "S", "start": 0, "end": 2003, "children": [{"value": "a", '
    )
    assert text.endswith('{"value": "b", "start": 2002, "end": 2003, "children": []}]}')
    assert text.count('"value": "B"') == 2001

    again, _ = runtime.Parser(TEXTBOOK_TABLE).parse(tokens)
    longer, _ = runtime.Parser(TEXTBOOK_TABLE).parse(["a", "b"] + tokens[1:])
    assert tree == again
    assert tree != longer

    text = repr(tree)
    assert text.startswith("Tree(value='S', start=0, end=2003, children=(Tree(value='a'")
    assert text.count("Tree(") == 4007


def test_format():
    tree, _ = runtime.Parser(TEXTBOOK_TABLE).parse(list("acb"))

    assert tree is not None
    assert tree.format_lines() == [
        "S [0, 3)",
        "  a [0, 1)",
        "  A [1, 1)",
        f"    {EMPTY} [1, 1)",
        "  B [1, 2)",
        "    c [1, 2)",
        "  b [2, 3)",
    ]


def test_to_json():
    tree, _ = runtime.Parser(TEXTBOOK_TABLE).parse(list("acb"))

    assert tree is not None
    result = json.loads(json.dumps(tree.to_json()))
    assert result["value"] == "S"
    assert [c["value"] for c in result["children"]] == ["a", "A", "B", "b"]
    assert result["children"][1]["children"] == [
        {"value": EMPTY, "start": 1, "end": 1, "children": []}
    ]


def test_to_json_text():
    tree, _ = runtime.parse(ExpressionGrammar, ["(", "id", ")", "*", "id"])

    assert tree is not None
    plain = tree.to_json()
    assert tree.to_json_text() == json.dumps(plain, ensure_ascii=False)
    assert tree.to_json_text(indent=2) == json.dumps(plain, indent=2, ensure_ascii=False)
    assert json.loads(tree.to_json_text(indent=4)) == plain


def test_repr():
    tree, _ = runtime.Parser(TEXTBOOK_TABLE).parse(list("acb"))

    assert tree is not None
    assert repr(tree.children[1]) == (
        f"Tree(value='A', start=1, end=1, children=(Tree(value='{EMPTY}', start=1, end=1, "
        "children=()),))"
    )
    assert eval(repr(tree), {"Tree": runtime.Tree}) == tree


def _in_textbook_language(tokens: list[str]) -> bool:
    # S -> a A B b, A -> a^n c^n, B -> b^m c
    match = re.fullmatch(r"a(a*)(c*)b*cb", "".join(tokens))
    return match is not None and len(match.group(1)) == len(match.group(2))


@given(lists(sampled_from(["a", "b", "c"]), max_size=10))
@example(tokens=list("aacbbcb"))
@example(tokens=list("ab"))
@example(tokens=list("aaccbcb"))
def test_textbook_accepts_exactly_the_language(tokens):
    tree, error = runtime.Parser(TEXTBOOK_TABLE).parse(tokens)

    if _in_textbook_language(tokens):
        assert error is None
        assert tree is not None
        assert tree.leaves() == tokens
    else:
        assert tree is None
        assert error is not None
        assert 0 <= error.position <= len(tokens)


def _min_costs(grammar: Grammar) -> dict[str, float]:
    """How many production applications it takes, at least, to turn each
    nonterminal into terminals."""
    costs: dict[str, float] = {nt: math.inf for nt in grammar.nonterminals}
    changed = True
    while changed:
        changed = False
        for production in grammar.productions:
            cost = 1 + sum(costs[s] for s in production.symbols if grammar.is_nonterminal(s))
            if cost < costs[production.name]:
                costs[production.name] = cost
                changed = True
    return costs


@composite
def sentences(draw, grammar: Grammar, max_depth: int = 6) -> list[str]:
    """Derive a random sentence from the grammar, top down. Past max_depth
    only the cheapest productions are used, so the derivation always ends.
    """
    costs = _min_costs(grammar)

    def cost(production):
        return 1 + sum(costs[s] for s in production.symbols if grammar.is_nonterminal(s))

    result = []
    stack = [(grammar.start, 0)]
    while len(stack) > 0:
        symbol, depth = stack.pop()
        if grammar.is_nonterminal(symbol):
            choices = list(grammar.productions_for(symbol))
            if depth >= max_depth:
                cheapest = min(cost(p) for p in choices)
                choices = [p for p in choices if cost(p) == cheapest]

            production = draw(sampled_from(choices))
            stack.extend((s, depth + 1) for s in reversed(production.symbols))

        elif symbol != EMPTY:
            result.append(symbol)

    return result


@given(sentences(TextbookGrammar))
def test_textbook_round_trip(tokens):
    tree, error = runtime.parse(TEXTBOOK_TABLE, tokens)

    assert error is None
    assert tree is not None
    assert tree.leaves() == tokens


@given(sentences(ExpressionGrammar))
def test_expression_round_trip(tokens):
    tree, error = runtime.parse(ExpressionGrammar, tokens)

    assert error is None
    assert tree is not None
    assert tree.leaves() == tokens


@given(sentences(StatementGrammar))
def test_statement_round_trip(tokens):
    tree, error = runtime.parse(StatementGrammar, tokens)

    assert error is None
    assert tree is not None
    assert tree.leaves() == tokens
