"""This is a small helper library to generate LL(1) parser tables.

An LL(1) parser is a top-down parser: it starts with the start symbol on a
stack and, looking at exactly one token of input, decides which production to
expand next. All of those decisions are made ahead of time and stored in a
table indexed by (nonterminal, terminal). Building that table needs the FIRST
and FOLLOW sets of the grammar, so that is most of what lives here.

The table produced here can drive the parser in `llparse.runtime`, which
builds a concrete parse tree: every production application becomes a node,
and empty productions show up as explicit `ε` leaves. There is no facility for
actions or custom ASTs; anything like that should be done by walking the tree.

## Making Grammars

The plain form of a grammar is a list of productions and a start symbol:

    grammar = Grammar(
        "S",
        [
            ("S", ["a", "A", "B", "b"]),
            ("A", ["a", "A", "c"]),
            ("A", [EMPTY]),
            ("B", ["b", "B"]),
            ("B", ["c"]),
        ],
    )

Nonterminals are the names on the left; everything else on the right is a
terminal, unless you pass `terminals=` and `nonterminals=` explicitly, in which
case anything you forgot to declare is an error.

You can also write the grammar as Python, with terminals and functions
decorated with `@rule`, and hand the start rule to `Grammar.from_rule`:

    @rule
    def expression():
        return seq(term, expression_tail)

    @rule
    def expression_tail():
        return opt(PLUS, term, expression_tail)

    @rule
    def term():
        return seq(LPAREN, expression, RPAREN) | ID

    PLUS = Terminal("+")
    LPAREN = Terminal("(")
    RPAREN = Terminal(")")
    ID = Terminal("id")

    grammar = Grammar.from_rule(expression)

The advantage of the second form is that all of your Python tools help you:
if you mis-type the name of a nonterminal you find out right away, with a
line number.

## What LL(1) can't do

No left recursion (`E -> E + T` has to become `E -> T E'`, `E' -> + T E' | ε`),
and no two productions for the same nonterminal that can start with the same
token. Both are detected when the table is built and reported as errors, with
enough detail to find the productions involved. Nothing is ever resolved
silently: if two productions want the same cell, you get a `ConflictError`,
not a table that quietly prefers one of them.

(The notes I worked from are the Stanford CS143 handouts at
http://dragonbook.stanford.edu/lecture-notes/Stanford-CS143/; handout 7 is the
one about top-down parsing, FIRST, and FOLLOW.)
"""

import dataclasses
import enum
import inspect
import logging
import types
import typing


generator_log = logging.getLogger("llparse.generator")

# The empty-string marker. A production whose right-hand side is just this
# symbol matches no input.
EMPTY = "ε"

# The end-of-input marker. The parser appends it to every token stream.
END = "$"


###############################################################################
# Grammars
###############################################################################
class SymbolKind(enum.Enum):
    """What kind of thing a symbol is."""

    TERMINAL = 0
    NONTERMINAL = 1
    EMPTY = 2
    END = 3


class GrammarError(ValueError):
    """The grammar is not well-formed."""

    pass


class UndeclaredSymbolError(GrammarError):
    symbol: str
    production: "Production"

    def __init__(self, symbol: str, production: "Production"):
        super().__init__(
            f"The production `{production}` uses '{symbol}', which is not a declared "
            + ("nonterminal" if symbol == production.name else "terminal or nonterminal")
        )
        self.symbol = symbol
        self.production = production


class NoStartRuleError(GrammarError):
    start: str

    def __init__(self, start: str):
        super().__init__(f"There is no production for the start symbol '{start}'")
        self.start = start


@dataclasses.dataclass(frozen=True)
class Production:
    """A single production rule, `name -> symbols`.

    `index` is the position of the production in its grammar. Two productions
    with the same name and symbols are still different productions if they
    have different indices, which is what lets the table builder tell two
    rules apart when they fight over a cell.
    """

    name: str
    symbols: typing.Tuple[str, ...]
    index: int

    @property
    def is_empty(self) -> bool:
        return self.symbols == (EMPTY,)

    def __str__(self) -> str:
        return f"{self.name} -> {' '.join(self.symbols)}"


def _is_reserved(symbol: str) -> bool:
    if symbol in (EMPTY, END):
        return True
    return symbol.startswith("__") and not symbol.startswith("__gen_")


class Grammar:
    """A context-free grammar: a start symbol and a list of productions.

    Grammars are immutable once constructed. If you want a different grammar,
    make a new one. Construction checks that the grammar is well-formed and
    raises a `GrammarError` (a `ValueError`) if it isn't.
    """

    start: str
    terminals: frozenset[str]
    nonterminals: frozenset[str]
    productions: typing.Tuple[Production, ...]

    # The canonical symbol table: every symbol the grammar knows about, mapped
    # to its kind.
    _kinds: dict[str, SymbolKind]
    _by_name: dict[str, typing.Tuple[Production, ...]]
    _terminal_order: typing.Tuple[str, ...]
    _nonterminal_order: typing.Tuple[str, ...]

    def __init__(
        self,
        start: str,
        productions: typing.Iterable[typing.Tuple[str, typing.Iterable[str]]],
        *,
        terminals: typing.Iterable[str] | None = None,
        nonterminals: typing.Iterable[str] | None = None,
    ):
        rules: list[Production] = []
        for index, (name, symbols) in enumerate(productions):
            symbols = tuple(symbols)
            if len(symbols) == 0:
                symbols = (EMPTY,)

            production = Production(name=name, symbols=symbols, index=index)
            if EMPTY in symbols and len(symbols) > 1:
                raise GrammarError(
                    f"The production `{production}` mixes {EMPTY} with other symbols"
                )
            rules.append(production)

        # We use dictionaries as ordered sets here, so that everything that
        # gets printed comes out in the order the grammar was written.
        nonterminal_order: dict[str, None] = {}
        terminal_order: dict[str, None] = {}
        for production in rules:
            nonterminal_order[production.name] = None
        if nonterminals is None:
            nonterminals = list(nonterminal_order)
        declared_nonterminals = frozenset(nonterminals)

        for production in rules:
            for symbol in production.symbols:
                if symbol != EMPTY and symbol not in declared_nonterminals:
                    terminal_order[symbol] = None
        if terminals is None:
            terminals = list(terminal_order)
        declared_terminals = frozenset(terminals)

        reserved = sorted(s for s in declared_terminals | declared_nonterminals if _is_reserved(s))
        if reserved:
            raise GrammarError(
                "Can't use {symbols} in grammars, {what} reserved.".format(
                    symbols=" or ".join(reserved),
                    what="it's" if len(reserved) == 1 else "they're",
                )
            )

        both = sorted(declared_terminals & declared_nonterminals)
        if both:
            raise GrammarError(
                f"Symbols cannot be both terminals and nonterminals: {', '.join(both)}"
            )

        seen: dict[typing.Tuple[str, typing.Tuple[str, ...]], Production] = {}
        for production in rules:
            if production.name not in declared_nonterminals:
                raise UndeclaredSymbolError(production.name, production)
            for symbol in production.symbols:
                if symbol == EMPTY:
                    continue
                if symbol not in declared_terminals and symbol not in declared_nonterminals:
                    raise UndeclaredSymbolError(symbol, production)

            key = (production.name, production.symbols)
            existing = seen.get(key)
            if existing is not None:
                raise GrammarError(
                    f"Found the production `{production}` more than once "
                    f"(at {existing.index} and {production.index})"
                )
            seen[key] = production

        by_name: dict[str, list[Production]] = {nt: [] for nt in declared_nonterminals}
        for production in rules:
            by_name[production.name].append(production)

        if start not in declared_nonterminals or len(by_name[start]) == 0:
            raise NoStartRuleError(start)

        for name in sorted(declared_nonterminals):
            if len(by_name[name]) == 0:
                generator_log.warning(f"Nonterminal {name} has no productions and cannot match")

        kinds = {EMPTY: SymbolKind.EMPTY, END: SymbolKind.END}
        for symbol in declared_terminals:
            kinds[symbol] = SymbolKind.TERMINAL
        for symbol in declared_nonterminals:
            kinds[symbol] = SymbolKind.NONTERMINAL

        self.start = start
        self.terminals = declared_terminals
        self.nonterminals = declared_nonterminals
        self.productions = tuple(rules)
        self._kinds = kinds
        self._by_name = {name: tuple(prods) for name, prods in by_name.items()}

        # Start first, then in order of appearance, then whatever was declared
        # but never used.
        ordered = [start] + [nt for nt in nonterminal_order if nt != start]
        ordered.extend(sorted(declared_nonterminals - set(ordered)))
        self._nonterminal_order = tuple(ordered)

        ordered = [t for t in terminal_order if t in declared_terminals]
        ordered.extend(sorted(declared_terminals - set(ordered)))
        self._terminal_order = tuple(ordered)

    def kind(self, symbol: str) -> SymbolKind:
        """Return the kind of the given symbol.

        Raises KeyError if the grammar has never heard of the symbol.
        """
        return self._kinds[symbol]

    def is_terminal(self, symbol: str) -> bool:
        return self._kinds.get(symbol) == SymbolKind.TERMINAL

    def is_nonterminal(self, symbol: str) -> bool:
        return self._kinds.get(symbol) == SymbolKind.NONTERMINAL

    def ordered_terminals(self) -> typing.Tuple[str, ...]:
        return self._terminal_order

    def ordered_nonterminals(self) -> typing.Tuple[str, ...]:
        return self._nonterminal_order

    def productions_for(self, name: str) -> typing.Tuple[Production, ...]:
        """All of the alternatives for the given nonterminal, in order."""
        return self._by_name[name]

    def format(self) -> str:
        return "\n".join(f"{p.index}: {p}" for p in self.productions)

    def __repr__(self) -> str:
        return f"<Grammar start={self.start} productions={len(self.productions)}>"

    def build_table(self) -> "ParseTable":
        """Construct an LL(1) parse table for this grammar.

        Raises a `TableError` if the grammar is not LL(1).
        """
        return TableGenerator(self).gen_table()

    @classmethod
    def from_rule(cls, start: "NonTerminal") -> "Grammar":
        """Build a grammar from everything reachable from the given rule.

        See the "Sugar for constructing grammars" section below.
        """
        nonterminals, terminals = gather_grammar(start)
        productions = [
            (rule.name, [symbol.name for symbol in body])
            for rule in nonterminals.values()
            for body in rule.body
        ]
        return cls(
            start.name,
            productions,
            terminals=terminals.keys(),
            nonterminals=nonterminals.keys(),
        )


###############################################################################
# FIRST and FOLLOW
###############################################################################
def update_changed(items: set[str], other: typing.Iterable[str]) -> bool:
    """Merge the `other` set into the `items` set, and return True if this
    changed the items set.
    """
    old_len = len(items)
    items.update(other)
    return old_len != len(items)


def first_of_sequence(
    firsts: typing.Mapping[str, typing.AbstractSet[str]],
    symbols: typing.Iterable[str],
) -> set[str]:
    """Return the first set for a *sequence* of symbols.

    Build the set by combining the first sets of the symbols from left to
    right as long as the symbols can be empty. If we reach the end and every
    symbol could have been empty, then the sequence can be empty too, and the
    result contains EMPTY. (The empty sequence, and the sequence that is just
    EMPTY, can both only be empty.)
    """
    result: set[str] = set()
    for symbol in symbols:
        if symbol == EMPTY:
            continue

        symbol_firsts = firsts[symbol]
        result.update(s for s in symbol_firsts if s != EMPTY)
        if EMPTY not in symbol_firsts:
            return result

    result.add(EMPTY)
    return result


def first_pass(grammar: Grammar, firsts: dict[str, set[str]]) -> bool:
    """Run one round of FIRST expansion over every production, in place.

    Returns True if any set changed.
    """
    changed = False
    for production in grammar.productions:
        f = firsts[production.name]
        changed = update_changed(f, first_of_sequence(firsts, production.symbols)) or changed
    return changed


def follow_pass(
    grammar: Grammar,
    firsts: typing.Mapping[str, typing.AbstractSet[str]],
    follows: dict[str, set[str]],
) -> bool:
    """Run one round of FOLLOW expansion over every production, in place.

    Returns True if any set changed.
    """
    changed = False
    for production in grammar.productions:
        # We walk backwards through the production, carrying along the set of
        # things that can come after the current position. At the end of the
        # production that's FOLLOW of the production itself. Every time we
        # pass a symbol the trailer becomes FIRST of that symbol, plus the old
        # trailer if the symbol can be empty.
        trailer = set(follows[production.name])
        for symbol in reversed(production.symbols):
            if symbol == EMPTY:
                continue

            if not grammar.is_nonterminal(symbol):
                trailer = {symbol}
                continue

            changed = update_changed(follows[symbol], trailer) or changed

            symbol_firsts = firsts[symbol]
            if EMPTY in symbol_firsts:
                trailer = trailer | {s for s in symbol_firsts if s != EMPTY}
            else:
                trailer = set(symbol_firsts)

    return changed


@dataclasses.dataclass(frozen=True)
class FirstInfo:
    """A structure that tracks the first set of a grammar. (Or, as it is
    commonly styled in textbooks, FIRST.)

    firsts[s] is the set of terminals that can begin anything derived from
    the symbol s. If s can derive the empty string then EMPTY is in the set
    too. For a terminal, firsts[s] is just {s}.

    For example, in the grammar

        S -> a A B b
        A -> a A c
        A -> ε
        B -> b B
        B -> c

    FIRST[A] is {a, ε}: one production starts with 'a', the other is empty.
    FIRST[S] is {a}.
    """

    firsts: dict[str, frozenset[str]]

    @classmethod
    def from_grammar(cls, grammar: Grammar) -> "FirstInfo":
        firsts: dict[str, set[str]] = {EMPTY: {EMPTY}, END: {END}}
        for terminal in grammar.terminals:
            firsts[terminal] = {terminal}
        for nonterminal in grammar.nonterminals:
            firsts[nonterminal] = set()

        # Because we're working with recursive and mutually recursive rules, we
        # need to make sure we terminate once we've actually found all the first
        # symbols. Iteration to a fixed point does that with no cleverness at
        # all: every pass can only add things, and there are only so many
        # things to add.
        passes = 1
        while first_pass(grammar, firsts):
            passes += 1
        generator_log.debug(f"FIRST converged after {passes} passes")

        return FirstInfo(firsts={k: frozenset(v) for k, v in firsts.items()})

    def __getitem__(self, symbol: str) -> frozenset[str]:
        return self.firsts[symbol]

    def is_nullable(self, symbol: str) -> bool:
        return EMPTY in self.firsts[symbol]

    def of_sequence(self, symbols: typing.Iterable[str]) -> frozenset[str]:
        return frozenset(first_of_sequence(self.firsts, symbols))


@dataclasses.dataclass(frozen=True)
class FollowInfo:
    """A structure that tracks the follow set of a grammar. (Or, again, as the
    textbooks would have it, FOLLOW.)

    The follow set for a nonterminal is the set of terminals that can come
    right after the nonterminal in a valid sentence. FOLLOW of the start
    symbol always has END in it, since the whole sentence is followed by the
    end of input. FOLLOW sets never contain EMPTY.

    To compute it we find every place that a nonterminal appears on the right
    of a production and look at what comes after it: the FIRST of the rest of
    the production. If the rest of the production can be empty (or there is
    no rest), then whatever follows the production's own nonterminal can
    follow this one too.

    In the grammar from the FirstInfo example, FOLLOW[A] is {b, c}: 'c' from
    `A -> a A c`, and 'b' from FIRST[B] in `S -> a A B b`.

    FOLLOW of a terminal is just the terminal itself. Nothing uses it; it's
    there so every symbol has an answer.
    """

    follows: dict[str, frozenset[str]]

    @classmethod
    def from_grammar(cls, grammar: Grammar, firsts: FirstInfo) -> "FollowInfo":
        follows: dict[str, set[str]] = {nt: set() for nt in grammar.nonterminals}
        follows[grammar.start].add(END)

        # See the comment in FirstInfo for why this is the way it is. Chasing
        # FOLLOW(A) -> FOLLOW(B) -> FOLLOW(A) recursively needs cycle detection
        # and a fix-up pass anyway; the fixed point just is the fix-up pass.
        passes = 1
        while follow_pass(grammar, firsts.firsts, follows):
            passes += 1
        generator_log.debug(f"FOLLOW converged after {passes} passes")

        result = {k: frozenset(v) for k, v in follows.items()}
        for terminal in grammar.terminals:
            result[terminal] = frozenset((terminal,))
        return FollowInfo(follows=result)

    def __getitem__(self, symbol: str) -> frozenset[str]:
        return self.follows[symbol]


###############################################################################
# Parse tables
###############################################################################
class TableError(Exception):
    """The grammar can't be turned into an LL(1) table."""

    pass


@dataclasses.dataclass(frozen=True)
class Conflict:
    nonterminal: str
    terminal: str
    first: Production
    second: Production

    def __str__(self):
        return "\n".join(
            [
                f"When expanding '{self.nonterminal}' and we see '{self.terminal}' "
                "we don't know whether to use:",
                f"- {self.first}",
                f"- {self.second}",
            ]
        )


class ConflictError(TableError):
    """Two or more productions want the same table cell: the grammar is not
    LL(1). `conflicts` has every collision found, in the order they were
    found.
    """

    conflicts: list[Conflict]

    def __init__(self, conflicts: list[Conflict]):
        super().__init__(conflicts)
        self.conflicts = conflicts

    def __str__(self):
        return f"The grammar is not LL(1), {len(self.conflicts)} conflicts:\n\n" + "\n\n".join(
            str(conflict) for conflict in self.conflicts
        )


class LeftRecursionError(TableError):
    """A nonterminal can derive something that starts with itself."""

    cycle: list[str]

    def __init__(self, cycle: list[str]):
        super().__init__(cycle)
        self.cycle = cycle

    def __str__(self):
        return f"The grammar is left-recursive: {' -> '.join(self.cycle)}"


@dataclasses.dataclass(frozen=True)
class ParseTable:
    """An LL(1) parse table.

    rows[A][a] is the production to expand when the nonterminal A is on top of
    the stack and the next token is a. Every nonterminal has a row, although
    the row might be empty. Anything missing from a row is a syntax error.

    The rows are read-only views, so a table can be shared by any number of
    parsers without anyone changing it out from under them.
    """

    start: str
    terminals: frozenset[str]
    rows: typing.Mapping[str, typing.Mapping[str, Production]]

    def is_nonterminal(self, symbol: str) -> bool:
        return symbol in self.rows

    def lookup(self, nonterminal: str, terminal: str) -> Production | None:
        return self.rows[nonterminal].get(terminal)

    def expected(self, nonterminal: str) -> list[str]:
        """The terminals that the given nonterminal is prepared to see."""
        return sorted(self.rows[nonterminal].keys())

    def format(self) -> str:
        """Format a parser table so pretty."""
        productions: dict[int, Production] = {}
        for row in self.rows.values():
            for production in row.values():
                productions[production.index] = production

        terminals = sorted(self.terminals) + [END]
        name_width = max(len(nt) for nt in self.rows)
        widths = [
            max(
                [len(terminal)]
                + [len(str(row[terminal].index)) for row in self.rows.values() if terminal in row]
            )
            for terminal in terminals
        ]

        header = "{name} | {terms}".format(
            name=" " * name_width,
            terms=" ".join(f"{t: <{w}}" for t, w in zip(terminals, widths)),
        )
        lines = [header, "-" * len(header)]
        for nonterminal, row in self.rows.items():
            cells = []
            for terminal, width in zip(terminals, widths):
                production = row.get(terminal)
                cell = "" if production is None else str(production.index)
                cells.append(f"{cell: <{width}}")
            lines.append(f"{nonterminal: <{name_width}} | {' '.join(cells)}")

        lines.append("")
        lines.extend(f"{index}: {productions[index]}" for index in sorted(productions))
        return "\n".join(lines)


class TableBuilder(object):
    """A helper object to assemble a parse table.

    Call `set_table_entry` for every (terminal, production) pair, then `flush`
    to get the table. Collisions are remembered, not resolved, and `flush`
    raises if there were any.
    """

    grammar: Grammar
    rows: dict[str, dict[str, Production]]
    conflicts: list[Conflict]

    def __init__(self, grammar: Grammar):
        self.grammar = grammar
        self.rows = {nt: {} for nt in grammar.ordered_nonterminals()}
        self.conflicts = []

    def set_table_entry(self, terminal: str, production: Production):
        """Put the production in the cell for (production.name, terminal).

        If a different production is already in the cell, record a conflict
        and leave the existing production where it is.
        """
        row = self.rows[production.name]
        existing = row.get(terminal)
        if existing is not None and existing != production:
            self.conflicts.append(
                Conflict(
                    nonterminal=production.name,
                    terminal=terminal,
                    first=existing,
                    second=production,
                )
            )
            return

        row[terminal] = production

    def flush(self) -> ParseTable:
        """Finish building the table and return it.

        Raises ConflictError if there were any conflicts during construction.
        """
        if self.conflicts:
            raise ConflictError(self.conflicts)

        return ParseTable(
            start=self.grammar.start,
            terminals=self.grammar.terminals,
            rows=types.MappingProxyType(
                {nt: types.MappingProxyType(row) for nt, row in self.rows.items()}
            ),
        )


class TableGenerator:
    """Generate LL(1) parse tables.

    The table cell (A, a) holds the production A -> w if a is in FIRST(w), or
    if w can be empty and a is in FOLLOW(A). Said the other way around, which
    is how we actually fill the table: every production A -> w goes into the
    cells for its "predict set", FIRST(w) without EMPTY, plus FOLLOW(A) if w
    can be empty.
    """

    grammar: Grammar
    firsts: FirstInfo
    follows: FollowInfo

    def __init__(self, grammar: Grammar):
        self.grammar = grammar
        self.firsts = FirstInfo.from_grammar(grammar)
        self.follows = FollowInfo.from_grammar(grammar, self.firsts)

    def predict(self, production: Production) -> frozenset[str]:
        """The set of terminals that select the given production."""
        first = self.firsts.of_sequence(production.symbols)
        result = {s for s in first if s != EMPTY}
        if EMPTY in first:
            result.update(self.follows[production.name])
        return frozenset(result)

    def find_left_recursion(self) -> list[str] | None:
        """Look for a nonterminal that can derive a sentential form that
        starts with itself, possibly after some symbols that can be empty.

        Returns the cycle as a list of nonterminals that starts and ends with
        the same one (like ['E', 'T', 'E']), or None if there isn't one.
        """
        grammar = self.grammar

        # An edge A -> B means B can be the leftmost thing A expands to.
        edges: dict[str, list[str]] = {nt: [] for nt in grammar.ordered_nonterminals()}
        for production in grammar.productions:
            for symbol in production.symbols:
                if not grammar.is_nonterminal(symbol):
                    break
                if symbol not in edges[production.name]:
                    edges[production.name].append(symbol)
                if not self.firsts.is_nullable(symbol):
                    break

        # Depth-first search, looking for a back edge. Done with an explicit
        # stack so that very deep grammars don't blow the recursion limit.
        finished: set[str] = set()
        for root in edges:
            if root in finished:
                continue

            path = [root]
            stack = [iter(edges[root])]
            while len(stack) > 0:
                successor = next(stack[-1], None)
                if successor is None:
                    finished.add(path.pop())
                    stack.pop()
                    continue

                if successor in path:
                    return path[path.index(successor) :] + [successor]
                if successor in finished:
                    continue

                path.append(successor)
                stack.append(iter(edges[successor]))

        return None

    def gen_table(self) -> ParseTable:
        """Generate the parse table.

        Raises LeftRecursionError if the grammar is left-recursive, and
        ConflictError if any cell would hold more than one production.
        """
        cycle = self.find_left_recursion()
        if cycle is not None:
            raise LeftRecursionError(cycle)

        builder = TableBuilder(self.grammar)
        for production in self.grammar.productions:
            predict = self.predict(production)
            if generator_log.isEnabledFor(logging.DEBUG):
                generator_log.debug(f"{production}: {' '.join(sorted(predict))}")
            for terminal in sorted(predict):
                builder.set_table_entry(terminal, production)

        return builder.flush()


###############################################################################
# Sugar for constructing grammars
###############################################################################
# This is the "high level" API for constructing grammars.
class Rule:
    """A token (terminal), production (nonterminal), or some other
    combination thereof. Rules are composed and then flattened into
    productions.
    """

    def __or__(self, other) -> "Rule":
        return AlternativeRule(self, other)

    def __add__(self, other) -> "Rule":
        return SequenceRule(self, other)

    def flatten(self) -> typing.Generator[list["NonTerminal | Terminal"], None, None]:
        """Convert this potentially nested and branching set of rules into a
        series of nice, flat symbol lists.

        e.g., if this rule is (X + (A | (B + C | D))) then flattening will
        yield something like:

            [X, A]
            [X, B, C]
            [X, D]

        Terminals and nonterminals stay as objects in the result, so that we
        can tell them apart while gathering the grammar.
        """
        raise NotImplementedError()


class Terminal(Rule):
    """A token, or terminal symbol in the grammar."""

    name: str
    definition_location: str

    def __init__(self, name: str):
        self.name = name

        caller = inspect.stack()[1]
        self.definition_location = f"{caller.filename}:{caller.lineno}"

    def flatten(self) -> typing.Generator[list["NonTerminal | Terminal"], None, None]:
        # We are just ourselves when flattened.
        yield [self]

    def __repr__(self) -> str:
        return self.name


_CURRENT_DEFINITION: str = "__global"
_CURRENT_GEN_INDEX: int = 0


class NonTerminal(Rule):
    """A non-terminal, or a production, in the grammar.

    You probably don't want to create this directly; instead you probably want
    to use the `@rule` decorator on a function that returns the body.
    """

    fn: typing.Callable[[], Rule]
    name: str
    definition_location: str
    _body: "list[list[NonTerminal | Terminal]] | None"

    def __init__(self, fn: typing.Callable[[], Rule], name: str | None = None):
        """Create a new NonTerminal.

        `fn` is the function that will yield the `Rule` which is the
        right-hand-side of this production; it will be flattened with `flatten`.
        `name` is the name of the production- if unspecified (or `None`) it will
        be replaced with the `__name__` of the provided fn.
        """
        self.fn = fn
        self.name = name or fn.__name__
        self._body = None

        caller = inspect.stack()[1]
        self.definition_location = f"{caller.filename}:{caller.lineno}"

    @property
    def body(self) -> "list[list[NonTerminal | Terminal]]":
        """The flattened body of the nonterminal: a list of productions where
        each production is a sequence of Terminals and NonTerminals. An empty
        list is an empty production.
        """
        global _CURRENT_DEFINITION
        global _CURRENT_GEN_INDEX

        if self._body is None:
            prev_defn = _CURRENT_DEFINITION
            prev_idx = _CURRENT_GEN_INDEX
            try:
                _CURRENT_DEFINITION = self.name
                _CURRENT_GEN_INDEX = 0
                self._body = list(self.fn().flatten())
            finally:
                _CURRENT_DEFINITION = prev_defn
                _CURRENT_GEN_INDEX = prev_idx

        return self._body

    def flatten(self) -> typing.Generator[list["NonTerminal | Terminal"], None, None]:
        # Although we contain multitudes, when flattened we're being asked in
        # the context of some other production. Yield ourselves, and trust that
        # in time we will be asked to generate our body.
        yield [self]

    def __repr__(self) -> str:
        return self.name


class AlternativeRule(Rule):
    """A rule that matches if one or another rule matches."""

    def __init__(self, left: Rule, right: Rule):
        self.left = left
        self.right = right

    def flatten(self) -> typing.Generator[list["NonTerminal | Terminal"], None, None]:
        # All the things from the left of the alternative, then all the things
        # from the right, never intermingled.
        yield from self.left.flatten()
        yield from self.right.flatten()


class SequenceRule(Rule):
    """A rule that matches if a first part matches, followed by a second part.
    Two things in order.
    """

    def __init__(self, first: Rule, second: Rule):
        self.first = first
        self.second = second

    def flatten(self) -> typing.Generator[list["NonTerminal | Terminal"], None, None]:
        for first in self.first.flatten():
            for second in self.second.flatten():
                yield first + second


class NothingRule(Rule):
    """A rule that matches no input. Nothing, the void. Don't make a new one of
    these, you're probably better off just using the singleton `Nothing`.
    """

    def flatten(self) -> typing.Generator[list["NonTerminal | Terminal"], None, None]:
        # It's quiet in here.
        yield []


Nothing = NothingRule()


def alt(*args: Rule) -> Rule:
    """A rule that matches one of a series of alternatives."""
    result = args[0]
    for rule in args[1:]:
        result = AlternativeRule(result, rule)
    return result


def seq(*args: Rule) -> Rule:
    """A rule that matches a sequence of rules."""
    result = args[0]
    for rule in args[1:]:
        result = SequenceRule(result, rule)
    return result


def opt(*args: Rule) -> Rule:
    """Mark a sequence as optional."""
    return AlternativeRule(seq(*args), Nothing)


def zero_or_more(*args: Rule) -> Rule:
    """Generate a rule that matches zero or more repetitions of a sequence.

    This makes a new nonterminal, `__gen_<rule>_<n>`, of the form

        __gen_x_0 -> args... __gen_x_0
        __gen_x_0 -> ε

    It is right-recursive on purpose: the left-recursive version can't be
    parsed top-down. In the parse tree the repetitions show up as a chain of
    these generated nodes.
    """
    global _CURRENT_GEN_INDEX

    tail: NonTerminal | None = None

    def impl() -> Rule:
        assert tail is not None
        return seq(*args, tail) | Nothing

    tail = NonTerminal(
        fn=impl,
        name=f"__gen_{_CURRENT_DEFINITION}_{_CURRENT_GEN_INDEX}",
    )
    _CURRENT_GEN_INDEX = _CURRENT_GEN_INDEX + 1

    return tail


def one_or_more(*args: Rule) -> Rule:
    """Generate a rule that matches one or more repetitions of a sequence."""
    return seq(*args, zero_or_more(*args))


@typing.overload
def rule(f: typing.Callable, /) -> NonTerminal: ...


@typing.overload
def rule(name: str | None = None) -> typing.Callable[[typing.Callable[[], Rule]], NonTerminal]: ...


def rule(
    name: str | None | typing.Callable = None,
) -> NonTerminal | typing.Callable[[typing.Callable[[], Rule]], NonTerminal]:
    """The decorator that marks a function as a nonterminal rule.

    As with all the best decorators, it can be called with or without arguments.
    If called with one argument, that argument is a name that overrides the name
    of the nonterminal, which defaults to the name of the function.
    """
    if callable(name):
        return rule()(name)

    def wrapper(f: typing.Callable[[], Rule]):
        assert name is None or isinstance(name, str)
        return NonTerminal(f, name or f.__name__)

    return wrapper


def gather_grammar(start: NonTerminal) -> tuple[dict[str, NonTerminal], dict[str, Terminal]]:
    """Starting from the given NonTerminal, gather all of the symbols
    (NonTerminals and Terminals) that make up the grammar.

    The start rule is always the first entry in the returned rules.
    """
    # NOTE: We use dictionaries here to preserve insertion order.
    rules: dict[NonTerminal, None] = {}
    terminals: dict[Terminal, None] = {}

    queue: list[NonTerminal] = [start]
    while len(queue) > 0:
        nt = queue.pop()
        if nt in rules:
            continue
        rules[nt] = None

        for body in nt.body:
            for symbol in body:
                if isinstance(symbol, NonTerminal):
                    if symbol not in rules:
                        queue.append(symbol)

                elif isinstance(symbol, Terminal):
                    terminals[symbol] = None

                else:
                    typing.assert_never(symbol)

    named_rules: dict[str, NonTerminal] = {}
    for nt in rules:
        existing = named_rules.get(nt.name)
        if existing is not None:
            raise GrammarError(
                f"""Found more than one rule named {nt.name}:
- {existing.definition_location}
- {nt.definition_location}"""
            )
        named_rules[nt.name] = nt

    named_terminals: dict[str, Terminal] = {}
    for terminal in terminals:
        existing = named_terminals.get(terminal.name)
        if existing is not None:
            raise GrammarError(
                f"""Found more than one terminal named {terminal.name}:
- {existing.definition_location}
- {terminal.definition_location}"""
            )

        existing_rule = named_rules.get(terminal.name)
        if existing_rule is not None:
            raise GrammarError(
                f"""Found a terminal and a rule both named {terminal.name}:
- The rule was defined at {existing_rule.definition_location}
- The terminal was defined at {terminal.definition_location}"""
            )

        named_terminals[terminal.name] = terminal

    return (named_rules, named_terminals)
