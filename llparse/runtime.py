import dataclasses
import json
import logging
import typing

from . import parser


@dataclasses.dataclass(eq=False, repr=False)
class Tree:
    """A node in a concrete parse tree.

    `value` is the grammar symbol: a nonterminal for interior nodes, a terminal
    or EMPTY for leaves. `start` and `end` are the half-open range of token
    indices the node covers; EMPTY leaves cover nothing, so `start == end`.

    Right-recursive rules (and every `zero_or_more`) make trees about as deep
    as the input is long, so nothing in here recurses: comparison, repr,
    formatting and JSON conversion all walk the tree with an explicit stack.
    """

    value: str
    start: int
    end: int
    children: typing.Tuple["Tree", ...]

    @property
    def is_leaf(self) -> bool:
        return len(self.children) == 0

    def __eq__(self, other) -> bool:
        if not isinstance(other, Tree):
            return NotImplemented

        stack: list[typing.Tuple[Tree, Tree]] = [(self, other)]
        while len(stack) > 0:
            left, right = stack.pop()
            if left is right:
                continue
            if (
                left.value != right.value
                or left.start != right.start
                or left.end != right.end
                or len(left.children) != len(right.children)
            ):
                return False
            stack.extend(zip(left.children, right.children))
        return True

    def __repr__(self) -> str:
        parts: list[str] = []
        stack: list[Tree | str] = [self]
        while len(stack) > 0:
            item = stack.pop()
            if isinstance(item, str):
                parts.append(item)
                continue

            parts.append(
                f"Tree(value={item.value!r}, start={item.start}, end={item.end}, children=("
            )
            # A one-element tuple needs its trailing comma.
            stack.append(",))" if len(item.children) == 1 else "))")
            for index in reversed(range(len(item.children))):
                stack.append(item.children[index])
                if index > 0:
                    stack.append(", ")
        return "".join(parts)

    def leaves(self) -> list[str]:
        """The terminals in this tree, left to right. EMPTY leaves don't count,
        so for a successful parse this is exactly the input.
        """
        result = []
        stack: list[Tree] = [self]
        while len(stack) > 0:
            node = stack.pop()
            if node.is_leaf:
                if node.value != parser.EMPTY:
                    result.append(node.value)
            else:
                stack.extend(reversed(node.children))
        return result

    def format_lines(self) -> list[str]:
        lines = []
        stack: list[typing.Tuple[Tree, int]] = [(self, 0)]
        while len(stack) > 0:
            node, indent = stack.pop()
            lines.append((" " * indent) + f"{node.value} [{node.start}, {node.end})")
            stack.extend((child, indent + 2) for child in reversed(node.children))
        return lines

    def format(self) -> str:
        return "\n".join(self.format_lines())

    def to_json(self) -> dict[str, typing.Any]:
        """Convert the tree into plain dicts and lists.

        Note that `json.dumps` recurses on nesting, so for very deep trees use
        `to_json_text` instead.
        """
        # Pre-order puts parents before children; walking it backwards builds
        # every child before the parent that needs it.
        order: list[Tree] = []
        stack: list[Tree] = [self]
        while len(stack) > 0:
            node = stack.pop()
            order.append(node)
            stack.extend(node.children)

        built: dict[int, dict[str, typing.Any]] = {}
        for node in reversed(order):
            built[id(node)] = {
                "value": node.value,
                "start": node.start,
                "end": node.end,
                "children": [built[id(child)] for child in node.children],
            }
        return built[id(self)]

    def to_json_text(self, indent: int | None = None) -> str:
        """Render the tree as JSON text, exactly as `json.dumps(self.to_json(),
        indent=indent, ensure_ascii=False)` would, but without recursing.
        """

        def newline(level: int) -> str:
            if indent is None:
                return ""
            return "\n" + " " * (indent * level)

        comma = ", " if indent is None else ","

        parts: list[str] = []
        stack: list[typing.Tuple[Tree, int] | str] = [(self, 0)]
        while len(stack) > 0:
            item = stack.pop()
            if isinstance(item, str):
                parts.append(item)
                continue

            node, level = item
            inner = newline(level + 1)
            parts.append("{" + inner)
            parts.append(f'"value": {json.dumps(node.value, ensure_ascii=False)}{comma}{inner}')
            parts.append(f'"start": {node.start}{comma}{inner}')
            parts.append(f'"end": {node.end}{comma}{inner}')
            if len(node.children) == 0:
                parts.append('"children": []' + newline(level) + "}")
                continue

            parts.append('"children": [' + newline(level + 2))
            stack.append(inner + "]" + newline(level) + "}")
            for index in reversed(range(len(node.children))):
                stack.append((node.children[index], level + 2))
                if index > 0:
                    stack.append(comma + newline(level + 2))
        return "".join(parts)


@dataclasses.dataclass(frozen=True)
class ParseError:
    """Why the input didn't parse.

    `position` is the index of the offending token in the input; it is the
    length of the input if we ran out. `token` is that token (END if we ran
    out). `stack` is what was left on the parse stack, top last. `expected`
    lists the tokens that would have been acceptable instead.
    """

    message: str
    position: int
    token: str
    stack: typing.Tuple[str, ...]
    expected: typing.Tuple[str, ...]

    def __str__(self) -> str:
        return f"{self.position}: {self.message}"


action_log = logging.getLogger("llparse.action")


def _next_node(
    node: int,
    children: list[list[int]],
    parents: list[int | None],
    slots: list[int],
) -> int:
    """Return the next node to fill in after `node` (and everything under it)
    is complete: its right sibling, or if it is the last child, its parent's
    right sibling, and so on up the tree. The root is its own answer, which
    only happens when the whole tree is done.
    """
    while True:
        parent = parents[node]
        if parent is None:
            return node

        siblings = children[parent]
        slot = slots[node] + 1
        if slot < len(siblings):
            return siblings[slot]

        node = parent


class Parser:
    """A table-driven LL(1) parser.

    The table is never modified, so one Parser (or one table) can be shared by
    as many parses as you like.
    """

    table: parser.ParseTable

    def __init__(self, table: parser.ParseTable):
        self.table = table

    def parse(
        self, tokens: typing.Iterable[str]
    ) -> typing.Tuple[Tree | None, ParseError | None]:
        """Parse a sequence of terminal names into a tree.

        Returns the root of the tree and None on success, or None and the
        error if the input is not in the language. Exactly one of the two is
        not None.
        """
        table = self.table
        input = list(tokens)
        for index, token in enumerate(input):
            if token not in table.terminals:
                return None, ParseError(
                    message=f"Syntax Error: Unknown token {token!r}",
                    position=index,
                    token=token,
                    stack=(table.start,),
                    expected=(),
                )

        input.append(parser.END)
        input_index = 0

        # The stack of symbols we still need to match, top last.
        stack: list[str] = [table.start]

        # The tree under construction, as an arena of nodes addressed by
        # index. Node 0 is the root. `slots[n]` is the position of node n in
        # its parent's list of children; `spans[n]` is only meaningful for
        # leaves, interior spans are worked out when the tree is finished.
        values: list[str] = [table.start]
        children: list[list[int]] = [[]]
        parents: list[int | None] = [None]
        slots: list[int] = [0]
        spans: list[typing.Tuple[int, int]] = [(0, 0)]

        # The node that corresponds to the symbol on top of the stack.
        cursor = 0

        al = action_log
        while len(stack) > 0:
            top = stack[-1]
            token = input[input_index]
            assert values[cursor] == top

            if top == parser.EMPTY:
                # Nothing to match; this leaf is done.
                self._log(stack, token, "skip")
                stack.pop()
                spans[cursor] = (input_index, input_index)
                cursor = _next_node(cursor, children, parents, slots)

            elif top == token:
                # Consume the token; this leaf is done.
                self._log(stack, token, "match")
                stack.pop()
                spans[cursor] = (input_index, input_index + 1)
                input_index += 1
                cursor = _next_node(cursor, children, parents, slots)

            elif table.is_nonterminal(top):
                production = table.lookup(top, token)
                if production is None:
                    return None, self._error(
                        f" while parsing {top}",
                        input,
                        input_index,
                        stack,
                        tuple(table.expected(top)),
                    )

                if al.isEnabledFor(logging.INFO):
                    self._log(stack, token, f"expand {production}")

                # Replace the nonterminal with its expansion, leftmost symbol
                # on top, and hang a new node off the tree for each symbol.
                stack.pop()
                stack.extend(reversed(production.symbols))

                first_child = len(values)
                for slot, symbol in enumerate(production.symbols):
                    values.append(symbol)
                    children.append([])
                    parents.append(cursor)
                    slots.append(slot)
                    spans.append((0, 0))
                children[cursor] = list(range(first_child, len(values)))
                cursor = first_child

            else:
                return None, self._error(
                    f", expected {top}",
                    input,
                    input_index,
                    stack,
                    (top,),
                )

        if input[input_index] != parser.END:
            return None, self._error(
                ", expected end of input",
                input,
                input_index,
                stack,
                (parser.END,),
            )

        return self._finish(values, children, spans), None

    def _log(self, stack: list[str], token: str, action: str):
        al = action_log
        if al.isEnabledFor(logging.INFO):
            al.info(
                "{stack: <30} {input: <15} {action}".format(
                    stack=" ".join(stack[-5:]),
                    input=token,
                    action=action,
                )
            )

    def _error(
        self,
        detail: str,
        input: list[str],
        input_index: int,
        stack: list[str],
        expected: typing.Tuple[str, ...],
    ) -> ParseError:
        token = input[input_index]
        if token == parser.END:
            what = "end of input"
        else:
            what = token

        return ParseError(
            message=f"Syntax Error: Unexpected {what}{detail}",
            position=input_index,
            token=token,
            stack=tuple(stack),
            expected=expected,
        )

    def _finish(
        self,
        values: list[str],
        children: list[list[int]],
        spans: list[typing.Tuple[int, int]],
    ) -> Tree:
        # Children always come after their parents in the arena, so walking
        # it backwards builds every child before the parent that needs it.
        built: list[Tree | None] = [None] * len(values)
        for node in reversed(range(len(values))):
            kids = tuple(typing.cast(Tree, built[child]) for child in children[node])
            if len(kids) > 0:
                start, end = kids[0].start, kids[-1].end
            else:
                start, end = spans[node]
            built[node] = Tree(value=values[node], start=start, end=end, children=kids)

        root = built[0]
        assert root is not None
        return root


def parse(
    table: parser.ParseTable | parser.Grammar,
    tokens: typing.Iterable[str],
) -> typing.Tuple[Tree | None, ParseError | None]:
    """Parse the tokens with the given table, or with a table built from the
    given grammar.
    """
    if isinstance(table, parser.Grammar):
        table = table.build_table()
    return Parser(table).parse(tokens)
