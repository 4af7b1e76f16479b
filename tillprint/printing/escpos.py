"""ESC/POS encoding of receipt documents.

The control sequences below are part of the wire contract with the
printers; every encoder must produce byte-identical output.
"""

from tillprint.printing.receipt import FEED_LINES, Directive, ReceiptDocument

ESC = "\x1b"
GS = "\x1d"

RESET = ESC + "@"
CENTER_ON = ESC + "a" + "\x01"
CENTER_OFF = ESC + "a" + "\x00"
BOLD_ON = ESC + "E" + "\x01"
BOLD_OFF = ESC + "E" + "\x00"
PARTIAL_CUT = GS + "V" + "\x41" + "\x03"

# Minimal connectivity check, sent without a job record
TEST_PRINT = (RESET + CENTER_ON + "TEST PRINT" + CENTER_OFF + "\n" * FEED_LINES).encode("utf-8")

_STYLE_DIRECTIVES = frozenset({Directive.BOLD, Directive.CENTER})


def _style_changes(current: frozenset, target: frozenset) -> list[str]:
    """Commands that move the printer from one style set to another.

    Styles are switched off bold first, and on center first, so nested
    blocks close in the reverse order they opened.
    """
    commands = []
    if Directive.BOLD in current - target:
        commands.append(BOLD_OFF)
    if Directive.CENTER in current - target:
        commands.append(CENTER_OFF)
    if Directive.CENTER in target - current:
        commands.append(CENTER_ON)
    if Directive.BOLD in target - current:
        commands.append(BOLD_ON)
    return commands


def render_text(document: ReceiptDocument) -> str:
    """Render a document to text with embedded control codes.

    Control commands occupy their own lines; lines are joined with "\\n".
    This is the text stored on print job records.

    Args:
        document: Receipt document.

    Returns:
        str: Receipt text.
    """
    segments = [RESET]
    style: frozenset = frozenset()

    for line in document:
        target = line.directives & _STYLE_DIRECTIVES
        if target != style:
            segments.extend(_style_changes(style, target))
            style = target

        if line.has(Directive.CUT):
            segments.append(PARTIAL_CUT)
        elif line.has(Directive.FEED):
            segments.append("\n" * FEED_LINES)
        else:
            segments.append(line.text)

    segments.extend(_style_changes(style, frozenset()))
    return "\n".join(segments)


def encode_text(text: str) -> bytes:
    """Encode rendered receipt text for the wire."""
    return text.encode("utf-8")


def encode(document: ReceiptDocument) -> bytes:
    """Encode a document to the ESC/POS byte stream.

    Args:
        document: Receipt document.

    Returns:
        bytes: Bytes to send to the printer.
    """
    return encode_text(render_text(document))
