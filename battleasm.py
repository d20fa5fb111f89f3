#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
BattleASM: Assembler for the 16-bit BattleASM toy CPU:
  - Encode one instruction per source line into a 16-bit word (6-bit opcode, two 5-bit register fields).
  - Bind symbolic variables to free registers (r1 - r29) on first use, release them with #free.
  - Handle #starts / #free / #repeat directives and #size / #before / #after compile-time constants.
  - Count the program size in a dry pass first, so constants can refer to it.
  - Emit the program as a C array (binary or decimal literals).

"""
version = "1.0.0"
# -------------------------------------------------
# python version : 3.12.8
# -------------------------------------------------

import sys
import time
import argparse
import random
import re
from enum import IntEnum

import logging
from rich.console import Console, Group
from rich import box
from rich.table import Table
from rich.logging import RichHandler
from rich.panel import Panel
from rich.columns import Columns
from rich.markup import escape

logger = logging.getLogger("battleasm")
console = Console(stderr=True)
g_debug = False


# --------------------------------------------------
# map (opcode/arity)
# --------------------------------------------------
class Opcode(IntEnum):
    LDI  = 0x00
    MV   = 0x20
    ADD  = 0x21
    SUB  = 0x22
    NOT  = 0x23
    AND  = 0x24
    OR   = 0x25
    XOR  = 0x26
    SHL  = 0x27
    SHR  = 0x28
    JMP  = 0x29
    JZ   = 0x2A
    JNZ  = 0x2B
    JN   = 0x2C
    JP   = 0x2D
    LD   = 0x2E
    ST   = 0x2F
    PUSH = 0x30
    POP  = 0x31
    ADDI = 0x32
    SUBI = 0x33
    SHLI = 0x34
    SHRI = 0x35
    FLAG = 0x3F

class Arity:
    """operand slots of an opcode, one entry per operand"""
    NONE     = ()
    REG      = ("reg",)
    IMM16    = ("imm16",)
    REG_REG  = ("reg", "reg")
    REG_IMM6 = ("reg", "imm6")

operation_map = {
    "ldi":  (Opcode.LDI,  Arity.IMM16),
    "mv":   (Opcode.MV,   Arity.REG_REG),
    "add":  (Opcode.ADD,  Arity.REG_REG),
    "sub":  (Opcode.SUB,  Arity.REG_REG),
    "not":  (Opcode.NOT,  Arity.REG),
    "and":  (Opcode.AND,  Arity.REG_REG),
    "or":   (Opcode.OR,   Arity.REG_REG),
    "xor":  (Opcode.XOR,  Arity.REG_REG),
    "shl":  (Opcode.SHL,  Arity.REG_REG),
    "shr":  (Opcode.SHR,  Arity.REG_REG),
    "jmp":  (Opcode.JMP,  Arity.REG),
    "jz":   (Opcode.JZ,   Arity.REG_REG),
    "jnz":  (Opcode.JNZ,  Arity.REG_REG),
    "jn":   (Opcode.JN,   Arity.REG_REG),
    "jp":   (Opcode.JP,   Arity.REG_REG),
    "ld":   (Opcode.LD,   Arity.REG_REG),
    "st":   (Opcode.ST,   Arity.REG_REG),
    "push": (Opcode.PUSH, Arity.REG),
    "pop":  (Opcode.POP,  Arity.REG),
    "addi": (Opcode.ADDI, Arity.REG_IMM6),
    "subi": (Opcode.SUBI, Arity.REG_IMM6),
    "shli": (Opcode.SHLI, Arity.REG_IMM6),
    "shri": (Opcode.SHRI, Arity.REG_IMM6),
    "flag": (Opcode.FLAG, Arity.NONE),
}
assert len(operation_map) == len(Opcode)

field_width = {
    "imm16": 16,
    "imm6":  6,
}

OPCODE_SHIFT = 10
OPCODE_MASK = 0x3F
REG_BITS = 5
REG_MASK = 0x1F
NUM_REGISTERS = 32
SP = 30
PC = 31
FIRST_VARIABLE = 1      # r0 is the LDI accumulator
LAST_VARIABLE = 29      # r30/r31 are sp/pc
FILLER_WORD = (Opcode.FLAG & OPCODE_MASK) << OPCODE_SHIFT   # => 0xFC00
RANDOM_OFFSET = -1
RANDOM_WINDOW = 1024    # words of memory a randomly placed program may land in

COMMENT = ";"
DIRECTIVE = "#"
CONSTANT = "#"


# --------------------------------------------------
# Errors
# --------------------------------------------------
class AsmError(Exception):
    """user error in the assembly source, reported as 'line N: message'"""
    def __init__(self, message, lineno=None):
        super().__init__(message)
        self.message = message
        self.lineno = lineno

    def __str__(self):
        if self.lineno is None:
            return self.message
        return f"line {self.lineno}: {self.message}"

    def at_line(self, lineno):
        if self.lineno is None:
            self.lineno = lineno
        return self

class UnknownMnemonic(AsmError):
    pass

class UnknownRegister(AsmError):
    pass

class TooManyVariables(AsmError):
    pass

class InvalidVariableName(AsmError):
    pass

class UnboundVariableFree(AsmError):
    pass

class ArityMismatch(AsmError):
    pass

class ValueOutOfRange(AsmError):
    pass

class InvalidLiteral(AsmError):
    pass

class UnknownConstant(AsmError):
    pass

class DirectiveBacktrack(AsmError):
    pass

class NestedRepeat(AsmError):
    pass

class UnterminatedRepeat(AsmError):
    pass

class MalformedHeader(AsmError):
    pass

class MalformedDirective(AsmError):
    pass

class SizeMismatch(AssertionError):
    """sizing pass and emission pass disagree: a bug in the assembler, not in the source"""
    pass


# --------------------------------------------------
# Number / constant parsing
# --------------------------------------------------
hex_re = re.compile(r"[0-9a-fA-F]+")
dec_re = re.compile(r"[+-]?[0-9]+")

def parse_number(token):
    """
    parse a literal to an integer. support b/0b (binary, '.' and '_' ignored), x/0x (hex) or decimal.
    Ex: b1010.0000, 0b1111_0000, x3F, 0x3f, -12

    return : integer (not range-checked)
    """
    t = token.strip()
    low = t.lower()
    if low.startswith("0b") or low.startswith("b"):
        digits = t[2:] if low.startswith("0b") else t[1:]
        bits = digits.replace(".", "").replace("_", "")
        if not bits or not all(c in "01" for c in bits):
            raise InvalidLiteral(f"Invalid binary number: '{token}'")
        return int(bits, 2)
    elif low.startswith("0x") or low.startswith("x"):
        digits = t[2:] if low.startswith("0x") else t[1:]
        if not hex_re.fullmatch(digits):
            raise InvalidLiteral(f"Invalid hexadecimal number: '{token}'")
        return int(digits, 16)
    else:
        if not dec_re.fullmatch(t):
            raise InvalidLiteral(f"Invalid decimal number: '{token}'")
        return int(t, 10)

def parse_constant(token, program_size, instruction_num):
    """
    resolve a compile-time constant '#name[:change[:multiplier]]'.
      - size   => program_size * multiplier + change
      - before => instruction_num * multiplier + change
      - after  => (program_size - instruction_num - 1) * multiplier + change
    An empty change or multiplier keeps its default (0 / 1).

    return : integer
    """
    fields = token[len(CONSTANT):].split(":")
    if len(fields) > 3:
        raise InvalidLiteral(f"Invalid compile-time constant: '{token}'")
    name = fields[0].lower()
    change = parse_number(fields[1]) if len(fields) > 1 and fields[1] else 0
    multiplier = parse_number(fields[2]) if len(fields) > 2 and fields[2] else 1

    if name == "size":
        base = program_size
    elif name == "before":
        base = instruction_num
    elif name == "after":
        base = program_size - instruction_num - 1
    else:
        raise UnknownConstant(f"Unknown compile-time constant '{fields[0]}'")
    return base * multiplier + change

def parse_immediate(token, program_size, instruction_num):
    if token.startswith(CONSTANT):
        return parse_constant(token, program_size, instruction_num)
    return parse_number(token)


# --------------------------------------------------
# Variable Table: registers and symbolic variables
# --------------------------------------------------
register_re = re.compile(r"^[rR]([0-9]{1,2})$")

class VariableTable:
    """
    Map operand tokens to register slots.
      - 'r0' .. 'r31' address a register directly.
      - 'sp' / 'pc' are pre-bound to r30 / r31.
      - any other name is a variable, bound to the lowest free slot of r1 - r29 on first use.
    Names are case-insensitive.
    """
    def __init__(self, allow_variables=True):
        self.allow_variables = allow_variables
        self.slots = [None] * NUM_REGISTERS     # slot -> name as first written
        self.slots[0] = "r0"
        self.slots[SP] = "sp"
        self.slots[PC] = "pc"
        self.name_map = {"sp": SP, "pc": PC}    # lower-case name -> slot

    def resolve(self, token):
        m = register_re.match(token)
        if m:
            num = int(m.group(1))
            if num >= NUM_REGISTERS:
                raise UnknownRegister(f"Unknown register: '{token}'")
            return num

        key = token.lower()
        if key in ("sp", "pc"):
            return self.name_map[key]
        if not self.allow_variables:
            raise UnknownRegister(f"Unknown register: '{token}' (variables are disabled)")
        if key in self.name_map:
            return self.name_map[key]
        if token[0].isdigit() or token[0] in "#+-":
            raise InvalidVariableName(f"Invalid variable name: '{token}'")

        for slot in range(FIRST_VARIABLE, LAST_VARIABLE + 1):
            if self.slots[slot] is None:
                self.slots[slot] = token
                self.name_map[key] = slot
                if g_debug:
                    logger.debug(f"Bound variable '{escape(token)}' to r{slot}")
                return slot
        raise TooManyVariables(f"Too many variables: '{token}'")

    def release(self, name):
        """
        free the slot held by a variable.

        return: the freed slot
        """
        key = name.lower()
        slot = self.name_map.get(key)
        if slot is None or not (FIRST_VARIABLE <= slot <= LAST_VARIABLE):
            raise UnboundVariableFree(f"Trying to free the variable '{name}' which isn't in use")
        del self.name_map[key]
        self.slots[slot] = None
        if g_debug:
            logger.debug(f"Freed variable '{escape(name)}' (r{slot})")
        return slot

    def bindings(self):
        """
        return: { name: slot } of the live variables, in slot order
        """
        return {self.slots[i]: i for i in range(FIRST_VARIABLE, LAST_VARIABLE + 1) if self.slots[i] is not None}


# --------------------------------------------------
# Line Encoder
# --------------------------------------------------
delims_re = re.compile(r"[ ,\t\r\n]+")

def tokenize(line):
    """
    drop the ';' comment and split on whitespace and commas.

    return: list of tokens (empty for blank or comment-only lines)
    """
    code = line.split(COMMENT)[0]
    return [t for t in delims_re.split(code) if t]

def get_operation(mnemonic):
    op = operation_map.get(mnemonic.lower())
    if op is None:
        raise UnknownMnemonic(f"Unknown instruction: '{mnemonic}'")
    return op

def encode_line(line, program_size, instruction_num, variables):
    """
    encode one source line into a 16-bit word.
      - bits 15-10: opcode
      - bits  9-5 : first register
      - bits  4-0 : second register, or bits 5-0 for the 6-bit immediate of ADDI/SUBI/SHLI/SHRI
      - LDI's 16-bit value fills the whole word (its opcode is 0)

    return: integer word, or None if the line holds no instruction
    """
    tokens = tokenize(line)
    if not tokens:
        return None

    opcode, arity = get_operation(tokens[0])
    word = (opcode & OPCODE_MASK) << OPCODE_SHIFT

    params = tokens[1:]
    for ind, tok in enumerate(params):
        if ind >= len(arity):
            raise ArityMismatch(f"Too many parameters for {opcode.name} ({len(arity)} expected): '{tok}'")
        kind = arity[ind]
        if kind == "reg":
            word |= variables.resolve(tok) << (1 - ind) * REG_BITS
        else:
            bits = field_width[kind]
            val = parse_immediate(tok, program_size, instruction_num)
            if val < 0 or val >= (1 << bits):
                raise ValueOutOfRange(f"Number not in range [0, 2^{bits}): '{tok}' -> {val}")
            word |= val

    if len(params) < len(arity):
        raise ArityMismatch(f"Too few parameters for {opcode.name} ({len(arity)} expected, got {len(params)})")
    return word

def decode_word(value):
    """
    split a word into its fields.

    return: (opcode bits 15-10, bits 9-5, bits 4-0)
    """
    return (value >> OPCODE_SHIFT) & OPCODE_MASK, (value >> REG_BITS) & REG_MASK, value & REG_MASK

def describe_word(value):
    """
    render a word back as an instruction, Ex: 0x8022 => 'mv r1, r2'
    """
    code, a, b = decode_word(value)
    if code < Opcode.MV:
        # any word below MV is an LDI: the literal's high bits overlay the zero opcode
        return f"ldi {value}"
    try:
        op = Opcode(code)
    except ValueError:
        return f"??? 0x{value:04X}"
    _, arity = operation_map[op.name.lower()]
    if arity == Arity.NONE:
        return op.name.lower()
    elif arity == Arity.REG:
        return f"{op.name.lower()} r{a}"
    elif arity == Arity.REG_IMM6:
        name = op.name.lower()
        if value & (1 << REG_BITS):
            # bit 5 is shared by the register and the immediate: odd register or immediate >= 32
            return f"{name} r{a}, {value & REG_MASK} | {name} r{a & ~1}, {value & OPCODE_MASK}"
        return f"{name} r{a}, {value & OPCODE_MASK}"
    return f"{op.name.lower()} r{a}, r{b}"


# --------------------------------------------------
# Program / Options
# --------------------------------------------------
class Word:
    def __init__(self, value, lineno=None, source=None):
        self.value = value        # 16-bit encoded instruction
        self.lineno = lineno      # source line, None for filler
        self.source = source      # stripped source text, None for filler

class Program:
    def __init__(self, name, offset, size):
        self.name = name          # name of the program (C identifier)
        self.offset = offset      # base memory offset (resolved, never the random sentinel)
        self.size = size          # number of words
        self.words = []           # Word list, index = instruction position
        self.variables = {}       # { name: slot } at the end of the source
        self.random_offset = False

    @property
    def codes(self):
        return [w.value for w in self.words]

class Options:
    def __init__(self, comments=True, var_table=False, allow_variables=True, decimal=False):
        self.comments = comments                  # source line as comment after each word
        self.var_table = var_table                # variable -> register table after the array
        self.allow_variables = allow_variables    # symbolic variable names as register operands
        self.decimal = decimal                    # decimal instead of 0b... literals

class RepeatCapture:
    def __init__(self, count, times, lineno):
        self.count = count        # instructions to capture
        self.times = times        # total copies, the captured one included
        self.lineno = lineno
        self.captured = []


# --------------------------------------------------
# Assembler: header, directives, two passes
# --------------------------------------------------
name_re = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

def parse_header(line, lineno=1):
    """
    parse the header line '<name> <offset>'.
    offset -1 (or 'random') asks for a random placement.

    return: (name, offset)
    """
    tokens = tokenize(line)
    if len(tokens) != 2:
        raise MalformedHeader(f"Expected '<name> <offset>', got '{line.strip()}'", lineno)
    name, off = tokens
    if not name_re.match(name):
        raise MalformedHeader(f"Invalid program name '{name}'", lineno)
    if off.lower() == "random":
        return name, RANDOM_OFFSET
    try:
        offset = parse_number(off)
    except InvalidLiteral:
        raise MalformedHeader(f"Invalid offset '{off}'", lineno)
    if offset < 0 and offset != RANDOM_OFFSET:
        raise MalformedHeader(f"Negative offset '{off}'", lineno)
    return name, offset

class Assembler:
    """
    Two passes over the body with the same directive state machine:
      - dry pass: count instructions only (no encoding, no errors), gives the program size.
      - emit pass: encode every line, with #size/#before/#after resolved against that size.
    """
    def __init__(self, options=None, rng=None, verbose=False):
        self.options = options if options is not None else Options()
        self.rng = rng
        self.verbose = verbose
        self.reset(dry=True, program_size=0)

    def reset(self, dry, program_size):
        self.dry = dry
        self.program_size = program_size
        self.instruction_num = 0
        self.variables = VariableTable(self.options.allow_variables)
        self.words = []
        self.repeat = None

    def assemble(self, lines):
        lines = list(lines)

        # 1) header: first line that holds anything
        header_idx = next((i for i, l in enumerate(lines) if tokenize(l)), None)
        if header_idx is None:
            raise MalformedHeader("Empty source: expected '<name> <offset>'", 1)
        header_lineno = header_idx + 1
        name, offset = parse_header(lines[header_idx], header_lineno)
        body = list(enumerate(lines[header_idx + 1:], start=header_lineno + 1))

        # 2) sizing pass
        self.reset(dry=True, program_size=0)
        self.run(body)
        program_size = self.instruction_num
        if self.verbose:
            logger.info(f"Sizing pass: '{name}' holds {program_size} words")

        # 3) emission pass
        self.reset(dry=False, program_size=program_size)
        self.run(body)
        if self.instruction_num != program_size or len(self.words) != program_size:
            raise SizeMismatch(f"Sizing pass counted {program_size} words but {len(self.words)} were emitted")
        if self.verbose:
            logger.info(f"Emission pass: encoded {len(self.words)} words")

        # 4) placement
        program = Program(name, offset, program_size)
        if offset == RANDOM_OFFSET:
            if program_size >= RANDOM_WINDOW:
                raise MalformedHeader(f"Program of {program_size} words does not fit a random placement in {RANDOM_WINDOW} words", header_lineno)
            rng = self.rng if self.rng is not None else random
            program.offset = rng.randrange(0, RANDOM_WINDOW - program_size)
            program.random_offset = True
            if self.verbose:
                logger.info(f"Random placement: offset {program.offset}")

        program.words = self.words
        program.variables = self.variables.bindings()
        return program

    def run(self, body):
        for lineno, line in body:
            stripped = line.strip()
            if stripped.startswith(DIRECTIVE):
                self.directive(stripped, lineno)
                continue

            if self.dry:
                if tokenize(line):
                    self.emit(None)
                continue

            try:
                value = encode_line(line, self.program_size, self.instruction_num, self.variables)
            except AsmError as e:
                raise e.at_line(lineno)
            if value is None:
                continue
            if g_debug:
                logger.debug(f"line {lineno}: [{self.instruction_num}] 0b{value:016b} <= {escape(stripped)}")
            self.emit(Word(value, lineno, stripped))

        if self.repeat is not None and not self.dry:
            raise UnterminatedRepeat(f"#repeat expected {self.repeat.count} instructions but the source ended after {len(self.repeat.captured)}", self.repeat.lineno)

    def put(self, word):
        if not self.dry:
            self.words.append(word)
        self.instruction_num += 1

    def emit(self, word):
        self.put(word)
        if self.repeat is None:
            return
        self.repeat.captured.append(word)
        if len(self.repeat.captured) == self.repeat.count:
            capture, self.repeat = self.repeat, None
            for _ in range(capture.times - 1):
                for w in capture.captured:
                    self.put(w)
            if g_debug and not self.dry:
                logger.debug(f"line {capture.lineno}: replayed {capture.count} words {capture.times - 1} more times")

    # ----------------------------------------------
    # Directives
    # ----------------------------------------------
    def directive(self, text, lineno):
        tokens = tokenize(text)
        keyword = tokens[0].lower()
        args = tokens[1:]
        if keyword == "#starts":
            self.starts(args, lineno)
        elif keyword == "#free":
            self.free(args, lineno)
        elif keyword == "#repeat":
            self.repeat_block(args, lineno)
        elif not self.dry:
            # Ex: "# setup" => not a directive, kept as a comment
            logger.warning(f"line {lineno}: Unknown directive '{escape(tokens[0])}' ignored.")

    def int_args(self, keyword, args, count, lineno):
        """
        parse the integer arguments of a directive.

        return: list of integers, or None if malformed in the dry pass
        """
        try:
            if len(args) != count:
                raise MalformedDirective(f"{keyword} expects {count} argument(s), got {len(args)}")
            return [parse_number(a) for a in args]
        except AsmError as e:
            if self.dry:
                return None
            raise MalformedDirective(f"{keyword}: {e.message}", lineno)

    def starts(self, args, lineno):
        # Ex: "#starts 20" => next instruction is word 20, the gap is filled with FLAG
        parsed = self.int_args("#starts", args, 1, lineno)
        if parsed is None:
            return
        target = parsed[0]
        if target < self.instruction_num:
            if self.dry:
                return
            raise DirectiveBacktrack(f"#starts directive wants to go back (current instruction: {self.instruction_num}, wanted instruction: {target})", lineno)
        while self.instruction_num < target:
            self.put(None if self.dry else Word(FILLER_WORD))

    def free(self, args, lineno):
        if self.dry:
            return
        if len(args) != 1:
            raise MalformedDirective(f"#free expects 1 argument(s), got {len(args)}", lineno)
        try:
            self.variables.release(args[0])
        except AsmError as e:
            raise e.at_line(lineno)

    def repeat_block(self, args, lineno):
        # Ex: "#repeat 2 3" => next 2 instructions, 3 times in total
        parsed = self.int_args("#repeat", args, 2, lineno)
        if parsed is None:
            return
        count, times = parsed
        if count < 1 or times < 1:
            if self.dry:
                return
            raise MalformedDirective(f"#repeat needs at least 1 instruction and 1 copy, got {count} {times}", lineno)
        if self.repeat is not None:
            if self.dry:
                return
            raise NestedRepeat(f"#repeat inside the #repeat of line {self.repeat.lineno}", lineno)
        self.repeat = RepeatCapture(count, times, lineno)

def assemble(source, options=None, rng=None, verbose=False):
    """
    assemble a whole source (text or list of lines).

    return: Program
    """
    if isinstance(source, str):
        lines = source.splitlines()
    else:
        lines = list(source)
    return Assembler(options, rng=rng, verbose=verbose).assemble(lines)


# --------------------------------------------------
# Output
# --------------------------------------------------
def format_word(value, decimal=False):
    if decimal:
        return str(value)
    return f"0b{value:016b}"

def render_c_array(program, comments=True, decimal=False, var_table=False):
    """
    render the program as C source:
        static uint16_t <name>_mem[] = { ... };
        static uint16_t <name>_size = <size>;
        static uint16_t <name>_offset = <offset>;

    return: C source text
    """
    out = [f"static uint16_t {program.name}_mem[] = {{"]
    for w in program.words:
        entry = f"\t{format_word(w.value, decimal)},"
        if comments and w.source:
            entry += f" // {w.source}"
        out.append(entry)
    out.append("};")
    out.append(f"static uint16_t {program.name}_size = {program.size};")
    out.append(f"static uint16_t {program.name}_offset = {program.offset};")
    if var_table:
        out.append("")
        for vname, slot in program.variables.items():
            out.append(f"// {vname}: r{slot}")
    return "\n".join(out) + "\n"

def render_listing(program):
    """
    human-readable listing, one word per line:
        <address> | <bits> | <decoded> | <source line>
    """
    lines = []
    for idx, w in enumerate(program.words):
        ad = program.offset + idx
        if w.lineno is None:
            origin = "(filler)"
        else:
            origin = f"line {w.lineno}: {w.source}"
        lines.append(f"{ad:04x} | {w.value:016b} | {describe_word(w.value):<16} | {origin}")
    return "\n".join(lines) + "\n"


# --------------------------------------------------
# main
# --------------------------------------------------
def main(argv=None):
    start_time = time.time()

    # 0) Parse arguments
    parser = argparse.ArgumentParser(description="BattleASM: Assembler for the 16-bit BattleASM toy CPU")
    parser.add_argument("-i","--input",required=True,
                        help="Input assembly file path.")
    parser.add_argument("-o","--output",default=None,
                        help="Output C file path (default: stdout).")
    parser.add_argument("-n","--no-comments",action="store_true",
                        help="Do not copy source lines as comments after each word.")
    parser.add_argument("-t","--var-table",action="store_true",
                        help="Append the variable -> register table as comments.")
    parser.add_argument("--decimal",action="store_true",
                        help="Write words as decimal numbers instead of 0b literals.")
    parser.add_argument("--obfuscate",action="store_true",
                        help="Same as --no-comments --decimal.")
    parser.add_argument("--no-variables",action="store_true",
                        help="Only accept r0-r31, sp and pc as register operands.")
    parser.add_argument("-r","--readable",action="store_true",
                        help="Generate a readable listing <output>_readable.txt (needs --output).")
    parser.add_argument("-s","--seed",type=int,default=None,
                        help="Seed for the random placement (offset -1 in the header).")
    parser.add_argument("-v","--verbose",action="store_true",
                        help="Enable verbose output.")
    parser.add_argument("-l","--log",action="store_true",
                        help="Enable log file output.")
    parser.add_argument("-d","--debug",action="store_true",
                        help="Enable debugging mode.")
    args = parser.parse_args(argv)

    # Initialize logger
    logging.basicConfig(
        level=logging.DEBUG,
        format="    %(message)s",
        handlers=[RichHandler(console=console, rich_tracebacks=True, markup=True)]
    )
    logger.setLevel(logging.DEBUG if args.debug else logging.INFO)

    LOG_FORMAT="%(asctime)s [%(levelname)s] %(message)s[%(filename)s:%(lineno)s]"
    log_name = args.output or args.input
    log_file_handler = logging.FileHandler(f"{log_name}.log", mode="w", encoding="utf-8") if args.log else logging.NullHandler()
    log_file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(log_file_handler)

    global g_debug
    previous_debug = g_debug
    g_debug = args.debug

    try:
        options = Options(comments=not (args.no_comments or args.obfuscate),
                          var_table=args.var_table,
                          allow_variables=not args.no_variables,
                          decimal=args.decimal or args.obfuscate)
        if args.readable and not args.output:
            raise AsmError("--readable needs --output.")

        # 1) Read input
        try:
            with open(args.input, "r", encoding="utf-8") as f:
                lines = f.readlines()
        except FileNotFoundError:
            raise AsmError(f"Input file '{args.input}' not found.")

        logger.info(f"Assembling => [bold magenta]{escape(args.input)}[/bold magenta]")

        # 2) Assemble
        rng = random.Random(args.seed) if args.seed is not None else None
        program = assemble(lines, options, rng=rng, verbose=args.verbose or args.debug)
        logger.info("Assembly complete.")

        # 3) Emit output
        text = render_c_array(program, comments=options.comments, decimal=options.decimal, var_table=options.var_table)
        outread = None
        if args.output:
            with open(args.output, "w", encoding="utf-8") as f:
                f.write(text)
            if args.verbose:
                logger.info(f"Wrote C array => {args.output}")
            if args.readable:
                outread = args.output + "_readable.txt"
                with open(outread, "w", encoding="utf-8") as rf:
                    rf.write(render_listing(program))
                if args.verbose:
                    logger.info(f"Wrote readable text file => {outread}")
        else:
            sys.stdout.write(text)
            sys.stdout.flush()
    finally:
        g_debug = previous_debug
        logger.removeHandler(log_file_handler)
        log_file_handler.close()

    finish_time = time.time()

    # 4) Debug tables
    if args.debug:
        words_table = Table(title="Words", box=box.MINIMAL_DOUBLE_HEAD)
        words_table.add_column("Address", style="yellow", no_wrap=True)
        words_table.add_column("Bits", style="green")
        words_table.add_column("Decoded", style="cyan")
        words_table.add_column("Line", style="magenta")
        words_table.add_column("Source", style="white")
        for idx, w in enumerate(program.words):
            words_table.add_row(f"0x{program.offset + idx:04X}", f"{w.value:016b}", describe_word(w.value),
                                str(w.lineno) if w.lineno else "-", escape(w.source) if w.source else "(filler)")

        variables_table = Table(title="Variables", box=box.MINIMAL_DOUBLE_HEAD)
        variables_table.add_column("Variable", style="magenta", no_wrap=True)
        variables_table.add_column("Register", style="yellow")
        for vname, slot in program.variables.items():
            variables_table.add_row(escape(vname), f"r{slot}")

        debug_panel = Panel.fit(Columns([words_table, variables_table]), title="[bold green][DEBUG][/bold green] [bold white]Information[/bold white]", style="bold green", padding=(1, 1))
        console.print(debug_panel)

    # 5) Summary
    output_table = Table(title="[bold white]Output File:[/bold white]", title_justify="left", box=box.MINIMAL_DOUBLE_HEAD, show_lines=True)
    output_table.add_column("Type", style="white", no_wrap=True)
    output_table.add_column("File", style="magenta")
    output_table.add_row("C Array", escape(args.output) if args.output else "<stdout>")
    if outread:
        output_table.add_row("Readable File(Text)", outread)

    placement = "random" if program.random_offset else "fixed"
    last = program.offset + program.size - 1
    summary = f"[bold white]Program:[/bold white] [bold magenta]{program.name}[/bold magenta]\n\n\
[bold white]Size:[/bold white] [bold green]{program.size}[/bold green] words\n\
[bold white]Placement ({placement}):[/bold white] [bold blue]0x{program.offset:X}\t- 0x{last:X}[/bold blue]\n\
[bold white]Variables:[/bold white] [bold green]{len(program.variables)}[/bold green]\n\n\
[bold white]Input File:[/bold white]\t[bold magenta]{escape(args.input)}[/bold magenta]"
    if args.verbose or args.debug:
        summary = f"[bold white]Elapsed Time: [/bold white]: [bold green]{finish_time-start_time:.4f}[/bold green] seconds\n\n" + summary

    panel = Panel.fit(Group(summary, output_table), title="[bold blue][INFO][/bold blue] Assembly Summary", subtitle=f"BattleASM v{version}", style="bold blue", padding=(1, 1))
    console.print(panel)
    return program

def run(argv=None):
    """
    command line entry point.

    return: exit status
    """
    try:
        main(argv)
    except AsmError as e:
        logger.error(escape(str(e)))
        summary = f"[bold red]Assembly Failed with AsmError[/bold red]\n\nCheck:\n[bold white]{escape(str(e))}[/bold white]"
        panel = Panel.fit(summary, title="Assembly Summary", subtitle=f"BattleASM v{version}", style="bold red", padding=(1, 1))
        console.print(panel)
        return 1
    except Exception as ex:
        logger.critical(escape(str(ex)))
        summary = f"[bold red]Assembly Failed with Exception[/bold red]\n\nCheck:\n[bold white]{escape(str(ex))}[/bold white]"
        panel = Panel.fit(summary, title="Assembly Summary", subtitle=f"BattleASM v{version}", style="bold red", padding=(1, 1))
        console.print(panel)
        return 1
    return 0

if __name__=="__main__":
    sys.exit(run())
