"""Lexer for the PSQ (Pipestore Query) language."""

import re

import ply.lex as lex

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "0": "\0", "\\": "\\", '"': '"', "'": "'", "/": "/"}


def _unescape(text: str) -> str:
    """Resolve backslash escapes in a quoted literal."""
    return re.sub(r"\\(.)", lambda m: _ESCAPES.get(m.group(1), "\\" + m.group(1)), text)


class QueryLexer:
    """Lexer for tokenizing PSQ statements."""

    # Reserved keywords
    reserved = {
        "from": "FROM",
        "select": "SELECT",
        "where": "WHERE",
        "offset": "OFFSET",
        "limit": "LIMIT",
        "sort": "SORT",
        "by": "BY",
        "asc": "ASC",
        "desc": "DESC",
        "as": "AS",
        "and": "AND",
        "or": "OR",
        "not": "NOT",
        "in": "IN",
        "between": "BETWEEN",
        "matches": "MATCHES",
        "insert": "INSERT",
        "into": "INTO",
        "update": "UPDATE",
        "set": "SET",
        "delete": "DELETE",
        "truncate": "TRUNCATE",
        "drop": "DROP",
        "show": "SHOW",
        "collections": "COLLECTIONS",
        "use": "USE",
        "true": "TRUE",
        "false": "FALSE",
        "null": "NULL",
    }

    # Token list
    tokens = [
        "IDENTIFIER",
        "INTEGER",
        "FLOAT",
        "STRING",
        "REGEX",
        "STAR",
        "COMMA",
        "COLON",
        "DOT",
        "LPAREN",
        "RPAREN",
        "LBRACKET",
        "RBRACKET",
        "LBRACE",
        "RBRACE",
        "EQ",
        "NEQ",
        "LT",
        "LTE",
        "GT",
        "GTE",
        "MINUS",
        "SEMICOLON",
    ] + list(reserved.values())

    # Lexer states: regex state for /pattern/ after MATCHES keyword
    states = (("regex", "exclusive"),)

    # Simple tokens (INITIAL state)
    t_STAR = r"\*"
    t_COMMA = r","
    t_COLON = r":"
    t_DOT = r"\."
    t_LPAREN = r"\("
    t_RPAREN = r"\)"
    t_LBRACKET = r"\["
    t_RBRACKET = r"\]"
    t_LBRACE = r"\{"
    t_RBRACE = r"\}"
    t_EQ = r"="
    t_NEQ = r"!="
    t_LTE = r"<="
    t_LT = r"<"
    t_GTE = r">="
    t_GT = r">"
    t_SEMICOLON = r";"

    # Ignored characters (including newlines - semicolons are the statement terminator)
    t_ignore = " \t\r"

    def __init__(self) -> None:
        self.lexer: lex.Lexer = None  # type: ignore

    # Comments must be tried before MINUS, so both are function rules
    def t_COMMENT(self, t: lex.LexToken) -> None:
        r"--[^\n]*"
        pass

    def t_MINUS(self, t: lex.LexToken) -> lex.LexToken:
        r"-"
        return t

    def t_FLOAT(self, t: lex.LexToken) -> lex.LexToken:
        r"\d+\.\d+(?:[eE][+-]?\d+)?|\d+[eE][+-]?\d+"
        t.value = float(t.value)
        return t

    def t_INTEGER(self, t: lex.LexToken) -> lex.LexToken:
        r"\d+"
        t.value = int(t.value)
        return t

    def t_STRING(self, t: lex.LexToken) -> lex.LexToken:
        r'"([^"\\]|\\.)*"|\'([^\'\\]|\\.)*\''
        t.value = _unescape(t.value[1:-1])
        return t

    def t_BACKTICK_IDENTIFIER(self, t: lex.LexToken) -> lex.LexToken:
        r"`[^`]+`"
        # Always an IDENTIFIER, so keywords can be used as field names
        t.value = t.value[1:-1]
        t.type = "IDENTIFIER"
        return t

    def t_IDENTIFIER(self, t: lex.LexToken) -> lex.LexToken:
        r"[a-zA-Z_$][a-zA-Z0-9_$]*"
        # Check if it's a reserved word (case-insensitive)
        t.type = self.reserved.get(t.value.lower(), "IDENTIFIER")
        if t.type == "MATCHES":
            t.lexer.begin("regex")
        return t

    def t_NEWLINE(self, t: lex.LexToken) -> None:
        r"\n+"
        t.lexer.lineno += len(t.value)

    def t_error(self, t: lex.LexToken) -> None:
        raise SyntaxError(f"Illegal character '{t.value[0]}' at position {t.lexpos}")

    # --- Exclusive regex state tokens ---

    t_regex_ignore = " \t\r"

    def t_regex_REGEX(self, t: lex.LexToken) -> lex.LexToken:
        r"/([^/\\\n]|\\.)*/[imsx]*"
        end = t.value.rindex("/")
        pattern = t.value[1:end].replace("\\/", "/")
        flags = t.value[end + 1:]
        t.value = f"(?{flags}){pattern}" if flags else pattern
        t.lexer.begin("INITIAL")
        return t

    def t_regex_NEWLINE(self, t: lex.LexToken) -> None:
        r"\n+"
        t.lexer.lineno += len(t.value)

    def t_regex_error(self, t: lex.LexToken) -> None:
        t.lexer.begin("INITIAL")
        raise SyntaxError(f"Expected /pattern/ after 'matches', got '{t.value[0]}' at position {t.lexpos}")

    # --- Lexer methods ---

    def build(self, **kwargs) -> None:  # type: ignore
        """Build the lexer."""
        self.lexer = lex.lex(module=self, **kwargs)

    def input(self, data: str) -> None:
        """Set the input string to tokenize."""
        self.lexer.begin("INITIAL")
        self.lexer.input(data)

    def token(self) -> lex.LexToken | None:
        """Return the next token."""
        return self.lexer.token()

    def tokenize(self, data: str) -> list[lex.LexToken]:
        """Tokenize the input and return all tokens."""
        self.input(data)
        tokens = []
        while True:
            tok = self.token()
            if tok is None:
                break
            tokens.append(tok)
        return tokens

