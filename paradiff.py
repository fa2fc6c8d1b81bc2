#!/usr/bin/env python3
"""
paradiff - paragraph-level differences between two revisions of a LaTeX
           manuscript, rendered with Typst markup.

Paragraphs are matched across revisions by their ``\\paralabel{par:...}``
marker, or by their position among the labelled paragraphs. Each requested
paragraph is diffed on the word level and the embedded citation, reference
and formatting commands are rewritten using the tables from the ``.aux``
file of a previous LaTeX run.

Move detection uses the mdiff package's diff_lines_with_similarities function.

Copyright (C) 2026 - paradiff authors
"""

import argparse
import os
import re
import sys
from dataclasses import dataclass, field
from typing import Callable, Dict, List, NamedTuple, Optional, TextIO, Tuple, Union

from mdiff import diff_lines_with_similarities

__version__ = "0.3.0"

LABEL_MARKER = "\\paralabel{par:"
BIBCITE_MARKER = "\\bibcite{"
NEWLABEL_MARKER = "\\newlabel{"
FIELD_SEPARATOR = "}{"
SPACEFACTOR = "\\spacefactor"
TOKEN_DELIMITER = " "

SAME = "same"
ADDED = "added"
REMOVED = "removed"

NOT_FOUND_MESSAGE = "Label not found in both text"


@dataclass
class Config:
    """Configuration class to hold all paradiff options"""

    lines: bool = False
    keep_latex: bool = False
    drop_unmatched_citations: bool = False
    detect_moves: bool = False
    encoding: str = "utf8"
    verbose: bool = False
    debug: bool = False
    labels: Optional[List[str]] = None

    def __post_init__(self):
        if self.labels is None:
            self.labels = []


class LabelNotFoundError(LookupError):
    """The requested label exists in neither revision"""

    def __init__(self, label: str):
        super().__init__(label)
        self.label = label

    def __str__(self):
        return f"label {self.label!r} not found in either revision"


# ---------------------------------------------------------------------------
# Label extraction
# ---------------------------------------------------------------------------


@dataclass
class ParagraphMap:
    """Paragraphs of one revision, keyed by label and by 1-based position"""

    by_label: Dict[str, str] = field(default_factory=dict)
    by_position: Dict[str, str] = field(default_factory=dict)

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        if key in self.by_label:
            return self.by_label[key]
        return self.by_position.get(key, default)

    def __contains__(self, key: str) -> bool:
        return key in self.by_label or key in self.by_position

    def __len__(self) -> int:
        return len(self.by_position)

    def labels(self) -> List[str]:
        return list(self.by_label)


def extract_paragraphs(text: str) -> ParagraphMap:
    """Split a document into its labelled paragraphs.

    Every ``\\paralabel{par:<name>}`` marker starts a paragraph which runs up to
    the next blank line (or the end of the document). Text before the first
    marker is ignored, and a marker whose label is never closed is skipped.
    """
    paragraphs = ParagraphMap()
    text = text.replace("\r\n", "\n")

    position = 0
    for segment in text.split(LABEL_MARKER)[1:]:
        segment = segment.split("\n\n", 1)[0].strip()
        label, closed, body = segment.partition("}")
        if not closed:
            continue

        position += 1
        body = body.strip()
        paragraphs.by_label[label] = body
        paragraphs.by_position[str(position)] = body

    return paragraphs


# ---------------------------------------------------------------------------
# Metadata (.aux) parsing
# ---------------------------------------------------------------------------


class Citation(NamedTuple):
    author: str
    year: str


@dataclass
class Metadata:
    """Citation and cross-reference tables read from an .aux file"""

    citations: Dict[str, Citation] = field(default_factory=dict)
    references: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_text(cls, text: str) -> "Metadata":
        return cls(citations=parse_citations(text), references=parse_references(text))


def _aux_fields(line: str, marker: str) -> List[str]:
    return line[len(marker) :].split(FIELD_SEPARATOR)


def _strip_braces(value: str) -> str:
    return value.lstrip("{").rstrip("}")


def parse_citations(text: str) -> Dict[str, Citation]:
    """Parse the ``\\bibcite`` lines of an .aux file.

    A line looks like::

        \\bibcite{zhang2023}{{73}{2023}{{Zhang et~al.\\spacefactor \\@m {}}}{{}}}

    Lines that do not split into key, number, year and author are skipped.
    """
    citations = {}
    for line in text.splitlines():
        if not line.startswith(BIBCITE_MARKER):
            continue

        fields = _aux_fields(line, BIBCITE_MARKER)
        if len(fields) < 4:
            continue

        key = _strip_braces(fields[0])
        year = _strip_braces(fields[2])
        author = _strip_braces(fields[3].split(SPACEFACTOR, 1)[0]).replace("~", " ")
        citations[key] = Citation(author, year)

    return citations


def parse_references(text: str) -> Dict[str, str]:
    """Parse the ``\\newlabel`` lines of an .aux file into label -> number"""
    references = {}
    for line in text.splitlines():
        if not line.startswith(NEWLABEL_MARKER):
            continue

        fields = _aux_fields(line, NEWLABEL_MARKER)
        if len(fields) < 2:
            continue

        references[_strip_braces(fields[0])] = _strip_braces(fields[1])

    return references


# ---------------------------------------------------------------------------
# Diff engine
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DiffSegment:
    """A run of tokens that is unchanged, added or removed"""

    kind: str  # 'same', 'added', 'removed'
    text: str


def tokenize(text: str) -> List[str]:
    return text.split(TOKEN_DELIMITER)


def _flatten_lines(text: str) -> str:
    return text.replace("\n", " ")


def _lcs_script(old: List[str], new: List[str]) -> List[Tuple[str, str]]:
    """Per-token edit script from a longest common subsequence"""
    prefix = 0
    while prefix < len(old) and prefix < len(new) and old[prefix] == new[prefix]:
        prefix += 1

    suffix = 0
    while (
        suffix < len(old) - prefix
        and suffix < len(new) - prefix
        and old[-1 - suffix] == new[-1 - suffix]
    ):
        suffix += 1

    a = old[prefix : len(old) - suffix]
    b = new[prefix : len(new) - suffix]

    # lengths[i][j] is the LCS length of a[i:] and b[j:]
    lengths = [[0] * (len(b) + 1) for _ in range(len(a) + 1)]
    for i in range(len(a) - 1, -1, -1):
        for j in range(len(b) - 1, -1, -1):
            if a[i] == b[j]:
                lengths[i][j] = lengths[i + 1][j + 1] + 1
            else:
                lengths[i][j] = max(lengths[i + 1][j], lengths[i][j + 1])

    script = [(SAME, token) for token in old[:prefix]]
    i = j = 0
    while i < len(a) and j < len(b):
        if a[i] == b[j]:
            script.append((SAME, a[i]))
            i += 1
            j += 1
        elif lengths[i + 1][j] >= lengths[i][j + 1]:
            script.append((REMOVED, a[i]))
            i += 1
        else:
            script.append((ADDED, b[j]))
            j += 1
    script.extend((REMOVED, token) for token in a[i:])
    script.extend((ADDED, token) for token in b[j:])
    script.extend((SAME, token) for token in old[len(old) - suffix :])

    return script


def _move_script(old: List[str], new: List[str]) -> List[Tuple[str, str]]:
    """Per-token edit script from mdiff, with moved blocks as remove + add"""
    # mdiff compares lines, so every distinct token becomes one numbered line
    ids: Dict[str, str] = {}

    def encode(tokens: List[str]) -> str:
        return "\n".join(ids.setdefault(token, str(len(ids))) for token in tokens)

    _, _, opcodes = diff_lines_with_similarities(
        encode(old),
        encode(new),
        cutoff=0.75,
        keepends=False,
        case_sensitive=True,
    )

    script = []
    for opcode in opcodes:
        tag = opcode.tag
        i1, i2, j1, j2 = opcode.i1, opcode.i2, opcode.j1, opcode.j2

        if tag == "equal":
            script.extend((SAME, token) for token in old[i1:i2])
        elif tag in ("delete", "move"):
            script.extend((REMOVED, token) for token in old[i1:i2])
        elif tag in ("insert", "moved"):
            script.extend((ADDED, token) for token in new[j1:j2])
        elif tag == "replace":
            script.extend((REMOVED, token) for token in old[i1:i2])
            script.extend((ADDED, token) for token in new[j1:j2])

    return script


def _group_script(script: List[Tuple[str, str]]) -> List[DiffSegment]:
    runs: List[Tuple[str, List[str]]] = []
    for kind, token in script:
        if runs and runs[-1][0] == kind:
            runs[-1][1].append(token)
        else:
            runs.append((kind, [token]))

    return [DiffSegment(kind, TOKEN_DELIMITER.join(tokens)) for kind, tokens in runs]


def compute_diff(
    old: str, new: str, lines: bool = False, detect_moves: bool = False
) -> List[DiffSegment]:
    """Compare two paragraphs word by word.

    With ``lines`` set, newlines are replaced by spaces first so that line
    breaks in the source do not count as changes. The returned segments keep
    the order of the text: joining the 'same' and 'removed' segments with a
    space gives back the old paragraph, 'same' and 'added' the new one.
    """
    if lines:
        old = _flatten_lines(old)
        new = _flatten_lines(new)

    if detect_moves:
        script = _move_script(tokenize(old), tokenize(new))
    else:
        script = _lcs_script(tokenize(old), tokenize(new))

    return _group_script(script)


def render_diff(segments: List[DiffSegment]) -> str:
    """Render segments as text with #add[...] / #rem[...] markup"""
    parts = []
    for segment in segments:
        if segment.kind == ADDED:
            parts.append(f"#add[{segment.text}]")
        elif segment.kind == REMOVED:
            parts.append(f"#rem[{segment.text}]")
        else:
            parts.append(segment.text)

    return TOKEN_DELIMITER.join(parts)


# ---------------------------------------------------------------------------
# Command substitution
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CommandCall:
    """A ``\\name{argument}`` command found in the text"""

    name: str
    argument: str


Token = Union[str, CommandCall]

COMMAND_NAME = re.compile(r"\w+")


def scan_commands(text: str) -> List[Token]:
    """Split text into literal strings and command calls.

    A command is a backslash, a word-character name and a single-line,
    non-empty argument closed by the first following ``}``. Nested braces are
    not supported; anything that does not fit is kept as literal text.
    """
    tokens: List[Token] = []
    literal_start = 0

    start = text.find("\\")
    while start != -1:
        name = COMMAND_NAME.match(text, start + 1)
        if name and text.startswith("{", name.end()):
            open_brace = name.end()
            close_brace = text.find("}", open_brace + 2)
            if close_brace != -1 and "\n" not in text[open_brace + 1 : close_brace]:
                if start > literal_start:
                    tokens.append(text[literal_start:start])
                tokens.append(
                    CommandCall(name.group(), text[open_brace + 1 : close_brace])
                )
                literal_start = close_brace + 1
                start = text.find("\\", literal_start)
                continue

        start = text.find("\\", start + 1)

    if literal_start < len(text):
        tokens.append(text[literal_start:])

    return tokens


class CommandRenderer:
    """Renders command calls as Typst using the .aux tables"""

    def __init__(
        self, metadata: Optional[Metadata] = None, drop_unmatched: bool = False
    ):
        self.metadata = metadata or Metadata()
        self.drop_unmatched = drop_unmatched

        self.rules: Dict[str, Callable[[str], str]] = {
            "ref": self.render_ref,
            "cite": self.render_cite,
            "citep": self.render_citep,
            "texttt": self.render_texttt,
            "url": self.render_url,
        }

    def render_ref(self, argument: str) -> str:
        return self.metadata.references.get(argument, argument)

    def _citations(self, argument: str, template: str) -> List[str]:
        parts = []
        for key in argument.split(","):
            key = key.strip()
            citation = self.metadata.citations.get(key)
            if citation is not None:
                parts.append(
                    template.format(author=citation.author, year=citation.year)
                )
            elif not self.drop_unmatched:
                parts.append(key)
        return parts

    def render_cite(self, argument: str) -> str:
        return "({})".format(", ".join(self._citations(argument, "{author} ({year})")))

    def render_citep(self, argument: str) -> str:
        return "({})".format("; ".join(self._citations(argument, "{author}, {year}")))

    def render_texttt(self, argument: str) -> str:
        return f"`{argument}`"

    def render_url(self, argument: str) -> str:
        return f'#link("{argument}")'

    def render_default(self, call: CommandCall) -> str:
        # unknown commands become Typst function calls of the same name
        return f"#{call.name}()[{call.argument}]"

    def render(self, call: CommandCall) -> str:
        rule = self.rules.get(call.name)
        if rule is None:
            return self.render_default(call)
        return rule(call.argument)

    def substitute(self, text: str) -> str:
        return "".join(
            token if isinstance(token, str) else self.render(token)
            for token in scan_commands(text)
        )


# ---------------------------------------------------------------------------
# Lookup and session
# ---------------------------------------------------------------------------


def lookup(
    label: str,
    old: ParagraphMap,
    new: ParagraphMap,
    metadata: Optional[Metadata] = None,
    config: Optional[Config] = None,
) -> str:
    """Render the diff of one labelled paragraph.

    A paragraph found in only one revision is shown as a single addition or
    removal. Raises LabelNotFoundError when neither revision has the label.
    """
    config = config or Config()
    old_text = old.get(label)
    new_text = new.get(label)

    if old_text is not None and new_text is not None:
        segments = compute_diff(old_text, new_text, config.lines, config.detect_moves)
    elif old_text is not None:
        text = _flatten_lines(old_text) if config.lines else old_text
        segments = [DiffSegment(REMOVED, text)]
    elif new_text is not None:
        text = _flatten_lines(new_text) if config.lines else new_text
        segments = [DiffSegment(ADDED, text)]
    else:
        raise LabelNotFoundError(label)

    if config.debug:
        print(f"{label}: {len(segments)} segments", file=sys.stderr)

    difftext = render_diff(segments)
    if config.keep_latex:
        return difftext

    renderer = CommandRenderer(metadata, config.drop_unmatched_citations)
    return renderer.substitute(difftext)


def read_file(filename: str, encoding: str = "utf8") -> str:
    """Read file with proper encoding"""
    try:
        with open(filename, "r", encoding=encoding) as f:
            return f.read()
    except UnicodeDecodeError:
        # Fallback to latin-1 if utf-8 fails
        with open(filename, "r", encoding="latin-1") as f:
            return f.read()


class ParagraphDiff:
    """Both revisions and the .aux tables of one session"""

    def __init__(self, config: Config):
        self.config = config
        self.old = ParagraphMap()
        self.new = ParagraphMap()
        self.metadata = Metadata()

    def load(self, old_file: str, new_file: str, aux_file: Optional[str] = None):
        """Read and index both revisions, and the .aux file if given"""
        if self.config.verbose:
            print(f"Processing {old_file} -> {new_file}", file=sys.stderr)

        self.old = extract_paragraphs(read_file(old_file, self.config.encoding))
        self.new = extract_paragraphs(read_file(new_file, self.config.encoding))

        if aux_file:
            aux = read_file(aux_file, self.config.encoding)
            self.metadata = Metadata.from_text(aux)

        if self.config.verbose:
            print(
                f"Paragraphs: {len(self.old)} old, {len(self.new)} new", file=sys.stderr
            )
            print(
                f"Citations: {len(self.metadata.citations)}, "
                f"references: {len(self.metadata.references)}",
                file=sys.stderr,
            )

    def lookup(self, label: str) -> str:
        return lookup(label, self.old, self.new, self.metadata, self.config)

    def labels(self) -> List[str]:
        """Labels of both revisions, old order first"""
        labels = self.old.labels()
        labels.extend(
            label for label in self.new.labels() if label not in self.old.by_label
        )
        return labels


def run_label_session(differ: ParagraphDiff, stdin: TextIO, stdout: TextIO):
    """Prompt for labels until end of input"""
    while True:
        print("** Label:", file=stdout)
        line = stdin.readline()
        if not line:
            break

        try:
            difftext = differ.lookup(line.strip())
        except LabelNotFoundError:
            print(NOT_FOUND_MESSAGE, file=stdout)
            continue

        print("** Changes:\n", file=stdout)
        print(difftext, file=stdout)


def _read_block(stdin: TextIO) -> Optional[str]:
    """Read lines up to a blank line; None at end of input"""
    lines = []
    for line in iter(stdin.readline, ""):
        line = line.rstrip("\n")
        if not line.strip():
            if lines:
                break
            continue
        lines.append(line)
    else:
        if not lines:
            return None

    return " ".join(lines)


def run_text_session(config: Config, stdin: TextIO, stdout: TextIO):
    """Diff pairs of texts typed in by the user until end of input"""
    print("Running in interactive mode", file=stdout)
    renderer = CommandRenderer(drop_unmatched=config.drop_unmatched_citations)

    while True:
        print("** Old text:", file=stdout)
        old = _read_block(stdin)
        if old is None:
            break

        print("** New text:", file=stdout)
        new = _read_block(stdin)
        if new is None:
            break

        segments = compute_diff(old, new, config.lines, config.detect_moves)
        difftext = render_diff(segments)
        if not config.keep_latex:
            difftext = renderer.substitute(difftext)
        print("** Changes:\n", file=stdout)
        print(difftext, file=stdout)


def create_argument_parser() -> argparse.ArgumentParser:
    """Create command line argument parser"""
    parser = argparse.ArgumentParser(
        description="Paragraph-by-paragraph word diff of two LaTeX revisions",
        epilog="Without input files, diffs texts typed in on standard input.",
    )

    parser.add_argument("old_file", nargs="?", help="Old LaTeX file")
    parser.add_argument("new_file", nargs="?", help="New LaTeX file")
    parser.add_argument(
        "aux_file", nargs="?", help="Aux file used to resolve citations and references"
    )

    parser.add_argument(
        "-l", "--lines", action="store_true", help="Replace newlines with spaces"
    )

    parser.add_argument(
        "-k",
        "--keep-latex",
        action="store_true",
        help="Do not detect/replace latex commands",
    )

    parser.add_argument(
        "-m",
        "--moves",
        dest="detect_moves",
        action="store_true",
        help="Use move-aware alignment",
    )

    parser.add_argument(
        "--drop-unmatched-citations",
        action="store_true",
        help="Leave out citation keys missing from the aux file",
    )

    parser.add_argument(
        "-e", "--encoding", default="utf8", help="File encoding (default: utf8)"
    )

    parser.add_argument("-V", "--verbose", action="store_true", help="Verbose output")

    parser.add_argument("--debug", action="store_true", help="Debug output")

    parser.add_argument(
        "-L",
        "--label",
        dest="labels",
        action="append",
        default=[],
        help="Label to print; may be repeated (skips the interactive prompt)",
    )

    parser.add_argument(
        "--list-labels", action="store_true", help="List the paragraph labels and exit"
    )

    parser.add_argument(
        "--version", action="version", version=f"paradiff.py {__version__}"
    )

    return parser


def main():
    """Main entry point"""
    parser = create_argument_parser()
    args = parser.parse_args()

    config = Config(
        lines=args.lines,
        keep_latex=args.keep_latex,
        drop_unmatched_citations=args.drop_unmatched_citations,
        detect_moves=args.detect_moves,
        encoding=args.encoding,
        verbose=args.verbose,
        debug=args.debug,
        labels=args.labels,
    )

    if args.old_file is None:
        if config.labels or args.list_labels:
            parser.print_help()
            sys.exit(1)

        run_text_session(config, sys.stdin, sys.stdout)
        return

    if args.new_file is None:
        parser.print_help()
        sys.exit(1)

    # Check input files exist
    for filename in (args.old_file, args.new_file, args.aux_file):
        if filename is not None and not os.path.exists(filename):
            print(f"Error: Input file {filename} does not exist", file=sys.stderr)
            sys.exit(1)

    if config.verbose:
        print(f"paradiff.py {__version__}", file=sys.stderr)
        print(f"Encoding: {config.encoding}", file=sys.stderr)

    differ = ParagraphDiff(config)

    try:
        differ.load(args.old_file, args.new_file, args.aux_file)
    except Exception as e:
        if config.debug:
            import traceback

            traceback.print_exc()
        else:
            print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    if args.list_labels:
        for label in differ.labels():
            print(label)
        return

    if config.labels:
        for label in config.labels:
            try:
                print(differ.lookup(label))
            except LabelNotFoundError:
                print(f"{NOT_FOUND_MESSAGE}: {label}")
        return

    run_label_session(differ, sys.stdin, sys.stdout)


if __name__ == "__main__":
    main()
