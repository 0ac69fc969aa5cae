import argparse
import importlib.util
import inspect
import logging
import os
import sys
import types

import llparse
from llparse import runtime


def load_module(file_name: str) -> types.ModuleType:
    mod_name = inspect.getmodulename(file_name)
    if mod_name is None:
        raise Exception(f"{file_name} does not seem to be a module")

    spec = importlib.util.spec_from_file_location(mod_name, os.path.abspath(file_name))
    if spec is None or spec.loader is None:
        raise Exception(f"Cannot load {file_name}")

    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def find_grammar(module: types.ModuleType, member_name: str | None) -> llparse.Grammar:
    """Find the grammar in the module: the named member if there is a name,
    otherwise the one and only Grammar defined at the top level.
    """
    if member_name is not None:
        value = getattr(module, member_name, None)
        if value is None:
            raise Exception(f"Cannot find {member_name} in {module.__file__}")
        if not isinstance(value, llparse.Grammar):
            raise Exception(f"{member_name} in {module.__file__} is not a Grammar")
        return value

    grammars = inspect.getmembers(module, lambda m: isinstance(m, llparse.Grammar))
    if len(grammars) == 0:
        raise Exception(f"No grammars found in {module.__file__}")
    if len(grammars) > 1:
        raise Exception(
            f"{len(grammars)} grammars found in {module.__file__}: {', '.join(g[0] for g in grammars)}"
        )
    return grammars[0][1]


def main(args: list[str]) -> int:
    parser = argparse.ArgumentParser(description="Parse a sequence of tokens with an LL(1) grammar")
    parser.add_argument("grammar", help="Path to a python file containing the grammar to load")
    parser.add_argument("tokens", nargs="*", help="The terminals to parse, in order")
    parser.add_argument(
        "--grammar-member",
        type=str,
        default=None,
        help="The name of the member in the grammar module to load. The default is to search "
        "the module for a Grammar. You should only need to specify this if you have more than "
        "one grammar in your module.",
    )
    parser.add_argument(
        "--chars",
        action="store_true",
        help="Treat every character of the tokens as a token of its own, so that 'aacbbcb' "
        "is seven tokens.",
    )
    parser.add_argument("--table", action="store_true", help="Print the parse table first")
    parser.add_argument("--json", action="store_true", help="Print the tree as JSON")
    parser.add_argument("--verbose", action="store_true", help="Log every parser action")

    parsed = parser.parse_args(args[1:])

    logging.basicConfig(
        level=logging.INFO if parsed.verbose else logging.WARNING,
        format="%(name)s: %(message)s",
    )

    try:
        grammar = find_grammar(load_module(parsed.grammar), parsed.grammar_member)
        table = grammar.build_table()
    except (llparse.GrammarError, llparse.TableError) as e:
        print(str(e), file=sys.stderr)
        return 2

    if parsed.table:
        print(table.format())
        print()

    tokens: list[str] = parsed.tokens
    if parsed.chars:
        tokens = [c for token in tokens for c in token]

    tree, error = runtime.Parser(table).parse(tokens)
    if error is not None:
        print(str(error), file=sys.stderr)
        if error.expected:
            print(f"Expected one of: {' '.join(error.expected)}", file=sys.stderr)
        return 1

    assert tree is not None
    if parsed.json:
        print(tree.to_json_text(indent=2))
    else:
        print(tree.format())
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv))
