from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Type

from lexer import BFParseError, Lexer, Token


@dataclass
class SourceLocation:
    file: str
    line: int
    column: int
    statement: str


@dataclass
class Node:
    # Positions never take part in tree equality.
    location: Optional[SourceLocation] = field(default=None, compare=False, repr=False, kw_only=True)


class Instruction(Node):
    pass


@dataclass
class MoveRight(Instruction):
    pass


@dataclass
class MoveLeft(Instruction):
    pass


@dataclass
class Increment(Instruction):
    pass


@dataclass
class Decrement(Instruction):
    pass


@dataclass
class Write(Instruction):
    pass


@dataclass
class Read(Instruction):
    pass


@dataclass
class Loop(Instruction):
    body: List[Instruction] = field(default_factory=list)


Ast = List[Instruction]


LEAF_INSTRUCTIONS: Dict[str, Type[Instruction]] = {
    "RIGHT": MoveRight,
    "LEFT": MoveLeft,
    "PLUS": Increment,
    "MINUS": Decrement,
    "DOT": Write,
    "COMMA": Read,
}


class Parser:
    def __init__(self, tokens: List[Token], filename: str, source_lines: List[str]):
        self.tokens = tokens
        self.filename = filename
        self.source_lines = source_lines
        self.index = 0

    def parse(self) -> Ast:
        """Parse the whole token stream into one instruction sequence.

        Open loops are kept on an explicit stack of (enclosing sequence,
        opening token) pairs, so the stack depth is the loop depth and nesting
        is not bounded by the Python recursion limit.
        """
        ast: Ast = []
        open_loops: List[Tuple[Ast, Token]] = []
        leaves = LEAF_INSTRUCTIONS
        while self._peek().type != "EOF":
            token = self._advance()
            leaf = leaves.get(token.type)
            if leaf is not None:
                ast.append(leaf(location=self._location_from_token(token)))
                continue
            if token.type == "LBRACKET":
                open_loops.append((ast, token))
                ast = []
                continue
            # RBRACKET
            if not open_loops:
                raise BFParseError(
                    f"Unmatched ']' at {self.filename}:{token.line}:{token.column}"
                )
            parent, opener = open_loops.pop()
            parent.append(Loop(location=self._location_from_token(opener), body=ast))
            ast = parent
        if open_loops:
            # Innermost unclosed loop.
            _parent, opener = open_loops[-1]
            raise BFParseError(
                f"Unmatched '[' at {self.filename}:{opener.line}:{opener.column}"
            )
        return ast

    def _peek(self) -> Token:
        return self.tokens[self.index]

    def _advance(self) -> Token:
        token = self.tokens[self.index]
        self.index += 1
        return token

    def _location_from_token(self, token: Token) -> SourceLocation:
        line_index = token.line - 1
        statement = ""
        if 0 <= line_index < len(self.source_lines):
            statement = self.source_lines[line_index].strip()
        return SourceLocation(file=self.filename, line=token.line, column=token.column, statement=statement)


def parse(source: str, filename: str = "<string>") -> Ast:
    tokens = Lexer(source, filename).tokenize()
    return Parser(tokens, filename, source.splitlines()).parse()
