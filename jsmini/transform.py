"""Source rewriting that makes cells safe to re-run in one long-lived context.

Top-level `let`/`const` bindings and `class` declarations can't be declared twice
in the same global scope, so running a cell a second time would fail with a
redeclaration error. Every `let`/`const` becomes `var`, and every
`class X {...}` becomes `var X = class X {...};`.

The rewrite works on the original text: tree-sitter gives each node its byte
range, the visitor records edits, and the edits are spliced in from the end of
the source backwards. Everything else is left untouched, byte for byte.
"""
import tree_sitter_javascript
from tree_sitter import Language, Node, Parser

__all__ = ["NodeVisitor", "DeclarationRewriter", "transform"]

JAVASCRIPT = Language(tree_sitter_javascript.language())
LEXICAL = ("let", "const")


class NodeVisitor:
    "Walk a tree-sitter syntax tree, calling `visit_<type>` where defined."

    def visit(self, node:Node):
        method = getattr(self, f"visit_{node.type}", self.generic_visit)
        return method(node)

    def generic_visit(self, node:Node):
        for child in node.named_children: self.visit(child)


class DeclarationRewriter(NodeVisitor):
    def __init__(self, source:bytes):
        "Collect `(start, end, text)` byte edits against `source`."
        self.source = source
        self.edits = []

    def _var_keyword(self, kind:Node|None):
        if kind is not None and kind.type in LEXICAL: self.edits.append((kind.start_byte, kind.end_byte, b"var"))

    def visit_lexical_declaration(self, node:Node):
        self._var_keyword(node.child_by_field_name("kind"))
        self.generic_visit(node)

    # `for (const k of xs)` has no declaration node, just a `kind` token on the loop header.
    def visit_for_in_statement(self, node:Node):
        self._var_keyword(node.child_by_field_name("kind"))
        self.generic_visit(node)

    def visit_class_declaration(self, node:Node):
        name, body = node.child_by_field_name("name"), node.child_by_field_name("body")
        self.edits.append((node.start_byte, node.start_byte, b"var " + name.text + b" = "))
        self.edits.append((body.end_byte, body.end_byte, b";"))
        self.generic_visit(node)

    def apply(self)->bytes:
        "Return the source with all collected edits spliced in."
        out = self.source
        # At equal offsets ";" sorts below "var", so a closing ";" lands before the next declaration.
        for start, end, text in sorted(self.edits, reverse=True): out = out[:start] + text + out[end:]
        return out


def _first_error(node:Node)->Node|None:
    if node.type == "ERROR" or node.is_missing: return node
    for child in node.children:
        if child.has_error or child.is_missing: return _first_error(child)
    return None


def parse(source:bytes)->Node:
    "Parse `source` as a script, raising `SyntaxError` on invalid input."
    root = Parser(JAVASCRIPT).parse(source).root_node
    if not root.has_error: return root
    bad = _first_error(root) or root
    row, col = bad.start_point
    lines = source.decode("utf-8", "replace").splitlines()
    text = lines[row] if row < len(lines) else None
    if bad.is_missing: msg = f"missing {bad.type!r}"
    elif bad.end_byte > bad.start_byte: msg = f"unexpected {source[bad.start_byte:bad.end_byte].decode('utf-8', 'replace')[:40]!r}"
    else: msg = "unexpected end of input"
    raise SyntaxError(msg, ("<cell>", row + 1, col + 1, text))


def transform(source:str)->str:
    "Rewrite `let`/`const` to `var` and class declarations to `var` bindings."
    # surrogatepass keeps lone surrogates from JSON-escaped requests intact through the byte round trip.
    raw = source.encode("utf-8", "surrogatepass")
    rewriter = DeclarationRewriter(raw)
    rewriter.visit(parse(raw))
    return rewriter.apply().decode("utf-8", "surrogatepass")
