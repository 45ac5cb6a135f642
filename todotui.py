# Quickstart:
#   pip install wcwidth
#   pip install windows-curses  # on Windows only
#   python todotui.py
"""Curses-based to-do list for the terminal.

This single-file program keeps a short list of to-do entries in
``~/.config/todos.json``.  Type a note and press Enter to add it (a creation
timestamp is appended), move with the arrow keys, press Tab to remove the
selected entry and Esc to save and quit.  Pressing Enter on an empty input
toggles a "More info" box with the full text of the selected entry.

The screen is built by :func:`render`, a pure function of :class:`AppState`
and the terminal size, and copied to curses by :func:`paint`.  The interface
uses the standard :mod:`curses` module and the third party :mod:`wcwidth`
library for Unicode width calculations.
"""
from __future__ import annotations

import contextlib
import curses
import json
import locale
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional, Tuple, Union

from wcwidth import wcwidth

# Ensure the user's locale so curses works with UTF-8 terminals.
locale.setlocale(locale.LC_ALL, "")

logger = logging.getLogger(__name__)

TODO_PATH = Path.home() / ".config" / "todos.json"
TIMESTAMP_FORMAT = "%B %d %I:%M %p"

MARGIN = 2
POPUP_PERCENT_X = 60
POPUP_PERCENT_Y = 20
HIGHLIGHT_SYMBOL = "> "
# Margins, help line, input box and an empty list box.
MIN_HEIGHT = 2 * MARGIN + 1 + 3 + 2
MIN_WIDTH = 30
ESC_DELAY_MS = 25

STYLE_NORMAL = 0
STYLE_BOLD = 1
STYLE_KEY = 2
STYLE_HIGHLIGHT = 3

KEY_ESC = "\x1b"
KEY_TAB = "\t"
ENTER_KEYS = ("\n", "\r", curses.KEY_ENTER)
BACKSPACE_KEYS = ("\x7f", "\b", curses.KEY_BACKSPACE)

HELP_SPANS = (
    ("Press ", STYLE_BOLD),
    ("Up/Down key", STYLE_KEY),
    (" to navigate, ", STYLE_BOLD),
    ("Tab", STYLE_KEY),
    (" to remove TODO, ", STYLE_BOLD),
    ("Esc", STYLE_KEY),
    (" to exit. ", STYLE_BOLD),
)

# ``get_wch`` yields ``str`` for characters and ``int`` for special keys.
Key = Union[str, int]


# ----------------------------------------------------------------------
# Errors
# ----------------------------------------------------------------------
class TodoError(Exception):
    """Base class for all errors reported by todotui."""


class PersistenceError(TodoError):
    """The todo file could not be read, parsed or written."""

    def __init__(self, path: Union[str, Path], reason: str) -> None:
        super().__init__(f"{reason}: {path}")
        self.path = Path(path)
        self.reason = reason


class PersistenceReadError(PersistenceError):
    """The todo file is absent or unreadable."""


class PersistenceParseError(PersistenceError):
    """The todo file exists but is not a JSON array of strings."""


class PersistenceWriteError(PersistenceError):
    """The todo file could not be written."""


class TerminalError(TodoError):
    """The terminal could not be switched into or out of full-screen mode."""


class TerminalSetupError(TerminalError):
    """Raw mode, keypad, mouse capture or colors could not be enabled."""


class TerminalTeardownError(TerminalError):
    """The terminal could not be fully restored after a clean run."""


# ----------------------------------------------------------------------
# Unicode width helpers
# ----------------------------------------------------------------------
def char_width(ch: str) -> int:
    return max(wcwidth(ch), 0)


def display_width(s: str) -> int:
    """Return the display width of *s* using :func:`wcwidth`.

    Negative widths from ``wcwidth`` are treated as zero.
    """
    return sum(char_width(ch) for ch in s)


def clip_to_cells(text: str, max_cells: int) -> str:
    """Clip ``text`` so it occupies at most ``max_cells`` display cells."""
    width = 0
    result_chars: List[str] = []
    for ch in text:
        w = char_width(ch)
        if width + w > max_cells:
            break
        result_chars.append(ch)
        width += w
    return "".join(result_chars)


def tail_cells(text: str, max_cells: int) -> str:
    """Return the longest suffix of ``text`` that fits in ``max_cells`` cells."""
    width = 0
    start = len(text)
    for i in range(len(text) - 1, -1, -1):
        w = char_width(text[i])
        if width + w > max_cells:
            break
        width += w
        start = i
    return text[start:]


def wrap_to_cells(text: str, max_cells: int) -> List[str]:
    """Word-wrap ``text`` into lines of at most ``max_cells`` display cells.

    Words longer than a line are broken across lines.
    """
    if max_cells <= 0:
        return []
    lines: List[str] = []
    line = ""
    for word in text.split(" "):
        candidate = f"{line} {word}" if line else word
        if display_width(candidate) <= max_cells:
            line = candidate
            continue
        if line:
            lines.append(line)
        while display_width(word) > max_cells:
            head = clip_to_cells(word, max_cells) or word[0]
            lines.append(head)
            word = word[len(head):]
        line = word
    if line:
        lines.append(line)
    return lines


# ----------------------------------------------------------------------
# Application state
# ----------------------------------------------------------------------
@dataclass
class AppState:
    """Everything the screen shows.

    ``selected`` is only meaningful while ``todos`` is non-empty; use
    :attr:`selected_todo` instead of indexing directly.
    """

    input: str = ""
    todos: List[str] = field(default_factory=list)
    selected: int = 0
    show_detail: bool = False

    @property
    def selected_todo(self) -> Optional[str]:
        if 0 <= self.selected < len(self.todos):
            return self.todos[self.selected]
        return None

    def advance_selection(self) -> None:
        if self.todos:
            self.selected = (self.selected + 1) % len(self.todos)

    def retreat_selection(self) -> None:
        if self.todos:
            if self.selected > 0:
                self.selected -= 1
            else:
                self.selected = len(self.todos) - 1

    def push_char(self, ch: str) -> None:
        self.input += ch

    def pop_char(self) -> None:
        self.input = self.input[:-1]

    def commit_input(self, now: Optional[datetime] = None) -> Optional[str]:
        """Turn the input buffer into a new entry, or toggle the detail box.

        A non-empty buffer becomes ``"<text> [<timestamp>]"`` and is cleared.
        An empty buffer toggles :attr:`show_detail` instead.  Returns the new
        entry, if one was created.
        """
        if not self.input:
            self.show_detail = not self.show_detail
            return None
        stamp = (now or datetime.now()).strftime(TIMESTAMP_FORMAT)
        entry = f"{self.input} [{stamp}]"
        self.todos.append(entry)
        self.input = ""
        logger.debug("added todo %d", len(self.todos))
        return entry

    def remove_selected(self) -> Optional[str]:
        """Remove the selected entry and keep the selection in range.

        An out-of-range selection is clamped to the last entry and nothing is
        removed.  Removing the last entry moves the selection up by one.
        """
        if not self.todos:
            return None
        if not 0 <= self.selected < len(self.todos):
            self.selected = len(self.todos) - 1
            return None
        removed = self.todos.pop(self.selected)
        if self.selected == len(self.todos):
            self.selected = max(len(self.todos) - 1, 0)
        logger.debug("removed todo, %d left", len(self.todos))
        return removed


# ----------------------------------------------------------------------
# Persistence
# ----------------------------------------------------------------------
def load(path: Union[str, Path]) -> List[str]:
    """Return the todo list stored at *path*.

    Raises :class:`PersistenceReadError` when the file cannot be read and
    :class:`PersistenceParseError` when it is not a JSON array of strings.
    """
    path = Path(path)
    try:
        raw = path.read_bytes()
    except OSError as exc:
        raise PersistenceReadError(path, f"cannot read todo file ({exc.strerror or exc})") from exc
    try:
        data = json.loads(raw.decode("utf-8"))
    except ValueError as exc:
        raise PersistenceParseError(path, f"todo file is not valid JSON ({exc})") from exc
    if not isinstance(data, list) or not all(isinstance(item, str) for item in data):
        raise PersistenceParseError(path, "todo file must hold a JSON array of strings")
    logger.debug("loaded %d todo(s) from %s", len(data), path)
    return data


def save(path: Union[str, Path], todos: List[str]) -> None:
    """Save *todos* atomically to *path* as a JSON array of strings.

    A symlinked *path* is followed so the link itself stays in place.
    """
    path = Path(path).resolve()
    tmp = path.with_name(path.name + ".tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(list(todos), f, ensure_ascii=False)
        os.replace(tmp, path)
    except OSError as exc:
        with contextlib.suppress(OSError):
            tmp.unlink()
        raise PersistenceWriteError(path, f"cannot write todo file ({exc.strerror or exc})") from exc
    logger.debug("saved %d todo(s) to %s", len(todos), path)


def load_or_create(path: Union[str, Path]) -> List[str]:
    """Load *path*, creating it with an empty list when it does not exist.

    A file that exists but cannot be read is never overwritten; that read
    error propagates along with parse and write failures.
    """
    try:
        return load(path)
    except PersistenceReadError as exc:
        if not isinstance(exc.__cause__, FileNotFoundError):
            raise
        logger.debug("%s; starting with an empty list", exc)
    save(path, [])
    return []


# ----------------------------------------------------------------------
# Rendering
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class Rect:
    x: int
    y: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    def inner(self) -> "Rect":
        """The area inside a one-cell border."""
        return Rect(self.x + 1, self.y + 1, max(self.width - 2, 0), max(self.height - 2, 0))


def centered_rect(percent_x: int, percent_y: int, area: Rect) -> Rect:
    """Return a rect sized by percentage of *area* and centered in it.

    The height never drops below three rows so a bordered box keeps a line
    of content.
    """
    width = area.width * percent_x // 100
    height = min(max(area.height * percent_y // 100, 3), area.height)
    return Rect(
        area.x + (area.width - width) // 2,
        area.y + (area.height - height) // 2,
        width,
        height,
    )


def layout(height: int, width: int) -> Tuple[Rect, Rect, Rect]:
    """Split the screen into the help line, input box and list box."""
    area = Rect(MARGIN, MARGIN, max(width - 2 * MARGIN, 0), max(height - 2 * MARGIN, 0))
    help_rect = Rect(area.x, area.y, area.width, 1)
    input_rect = Rect(area.x, area.y + 1, area.width, 3)
    list_rect = Rect(area.x, area.y + 4, area.width, max(area.height - 4, 0))
    return help_rect, input_rect, list_rect


class Frame:
    """A grid of display cells, each with a style.

    A double-width character occupies its own cell plus an empty
    continuation cell to its right.
    """

    def __init__(self, height: int, width: int) -> None:
        self.height = height
        self.width = width
        self.cells: List[List[str]] = [[" "] * width for _ in range(height)]
        self.styles: List[List[int]] = [[STYLE_NORMAL] * width for _ in range(height)]
        self.cursor: Optional[Tuple[int, int]] = None

    def row_text(self, y: int) -> str:
        return "".join(self.cells[y])

    def put(self, y: int, x: int, text: str, style: int = STYLE_NORMAL, limit: Optional[int] = None) -> int:
        """Write *text* at ``(y, x)`` without crossing column *limit*.

        Returns the column after the last cell written.
        """
        limit = self.width if limit is None else min(limit, self.width)
        if not 0 <= y < self.height:
            return x
        row = self.cells[y]
        col = x
        for ch in text:
            w = wcwidth(ch)
            if w < 0:
                ch, w = " ", 1
            if w == 0:
                prev = col - 1
                while prev > x and row[prev] == "":
                    prev -= 1
                if prev >= x:
                    row[prev] += ch
                continue
            if col + w > limit:
                break
            row[col] = ch
            self.styles[y][col] = style
            for extra in range(1, w):
                row[col + extra] = ""
                self.styles[y][col + extra] = style
            col += w
        return col

    def restyle(self, y: int, x: int, width: int, style: int) -> None:
        for col in range(max(x, 0), min(x + width, self.width)):
            self.styles[y][col] = style

    def clear(self, rect: Rect) -> None:
        for y in range(max(rect.y, 0), min(rect.bottom, self.height)):
            row = self.cells[y]
            # Do not leave half of a wide character behind at either edge.
            if 0 < rect.x < self.width and row[rect.x] == "":
                row[rect.x - 1] = " "
            if rect.right < self.width and row[rect.right] == "":
                row[rect.right] = " "
            for col in range(max(rect.x, 0), min(rect.right, self.width)):
                row[col] = " "
                self.styles[y][col] = STYLE_NORMAL

    def box(self, rect: Rect, title: str = "", style: int = STYLE_NORMAL) -> None:
        """Draw a single-line border around *rect* with *title* on the top edge."""
        if rect.width < 2 or rect.height < 2:
            return
        fill = rect.width - 2
        self.put(rect.y, rect.x, "┌" + "─" * fill + "┐", style)
        for y in range(rect.y + 1, rect.bottom - 1):
            self.put(y, rect.x, "│", style)
            self.put(y, rect.right - 1, "│", style)
        self.put(rect.bottom - 1, rect.x, "└" + "─" * fill + "┘", style)
        if title:
            self.put(rect.y, rect.x + 1, title, style, limit=rect.right - 1)


def render(state: AppState, height: int, width: int) -> Frame:
    """Build the whole screen for *state* on a ``height`` x ``width`` terminal."""
    frame = Frame(height, width)
    if height < MIN_HEIGHT or width < MIN_WIDTH:
        _render_too_small(frame)
        return frame
    help_rect, input_rect, list_rect = layout(height, width)
    _render_help(frame, help_rect)
    _render_input(frame, state, input_rect)
    _render_list(frame, state, list_rect)
    entry = state.selected_todo
    if state.show_detail and entry is not None:
        _render_detail(frame, entry)
    return frame


def _render_too_small(frame: Frame) -> None:
    if frame.height == 0 or frame.width == 0:
        return
    msg = clip_to_cells(
        f"Window too small ({frame.width}x{frame.height}). Enlarge to continue.", frame.width - 1
    )
    frame.put(frame.height // 2, max(0, (frame.width - display_width(msg)) // 2), msg)


def _render_help(frame: Frame, rect: Rect) -> None:
    col = rect.x
    for text, style in HELP_SPANS:
        col = frame.put(rect.y, col, text, style, limit=rect.right)


def _render_input(frame: Frame, state: AppState, rect: Rect) -> None:
    frame.box(rect, "Add a TODO")
    inner = rect.inner()
    # One cell is kept free so the cursor stays inside the box.
    visible = tail_cells(state.input, max(inner.width - 1, 0))
    end = frame.put(inner.y, inner.x, visible, limit=inner.right)
    frame.cursor = (inner.y, end)


def _render_list(frame: Frame, state: AppState, rect: Rect) -> None:
    frame.box(rect, "Todo(s)")
    inner = rect.inner()
    if inner.height == 0 or not state.todos:
        return
    selected = state.selected if state.selected_todo is not None else None
    offset = 0
    if selected is not None and selected >= inner.height:
        offset = selected - inner.height + 1
    pad = " " * display_width(HIGHLIGHT_SYMBOL) if selected is not None else ""
    last = min(len(state.todos), offset + inner.height)
    for row, index in enumerate(range(offset, last)):
        y = inner.y + row
        style = STYLE_NORMAL
        marker = pad
        if index == selected:
            style = STYLE_HIGHLIGHT
            marker = HIGHLIGHT_SYMBOL
            frame.restyle(y, inner.x, inner.width, style)
        frame.put(y, inner.x, f"{marker}{index + 1}: {state.todos[index]}", style, limit=inner.right)


def _render_detail(frame: Frame, entry: str) -> None:
    area = centered_rect(POPUP_PERCENT_X, POPUP_PERCENT_Y, Rect(0, 0, frame.width, frame.height))
    frame.clear(area)
    frame.box(area, "More info")
    inner = area.inner()
    for row, line in enumerate(wrap_to_cells(entry, inner.width)[: inner.height]):
        frame.put(inner.y + row, inner.x, line, limit=inner.right)


# ----------------------------------------------------------------------
# Curses output
# ----------------------------------------------------------------------
def default_attrs() -> Dict[int, int]:
    """Monochrome curses attributes for each style."""
    return {
        STYLE_NORMAL: curses.A_NORMAL,
        STYLE_BOLD: curses.A_BOLD,
        STYLE_KEY: curses.A_BOLD,
        STYLE_HIGHLIGHT: curses.A_REVERSE,
    }


def color_attrs() -> Dict[int, int]:
    """Color attributes for each style; needs :func:`curses.start_color`."""
    attrs = default_attrs()
    try:
        curses.use_default_colors()
        background = -1
    except curses.error:
        background = curses.COLOR_BLACK
    curses.init_pair(1, curses.COLOR_GREEN, background)
    attrs[STYLE_KEY] = curses.A_BOLD | curses.color_pair(1)
    if curses.COLORS > 8:
        curses.init_pair(2, curses.COLOR_WHITE, 8)  # dark gray
        attrs[STYLE_HIGHLIGHT] = curses.color_pair(2)
    return attrs


def paint(win, frame: Frame, attrs: Dict[int, int]) -> None:
    """Copy *frame* to the curses window *win* and place the cursor.

    The last column is never written so curses does not scroll.
    """
    win.erase()
    limit = frame.width - 1
    for y in range(frame.height):
        cells = frame.cells[y]
        styles = frame.styles[y]
        x = 0
        while x < limit:
            style = styles[x]
            start = x
            while x < limit and styles[x] == style:
                x += 1
            text = "".join(cells[start:x])
            if style != STYLE_NORMAL or text.strip():
                win.addstr(y, start, text, attrs.get(style, curses.A_NORMAL))
    if frame.cursor is not None:
        win.move(*frame.cursor)
    win.refresh()


# ----------------------------------------------------------------------
# Terminal session
# ----------------------------------------------------------------------
def _restore(steps: List[Callable[[], object]]) -> List[curses.error]:
    """Run the teardown *steps* last-first, attempting every one."""
    failures: List[curses.error] = []
    while steps:
        step = steps.pop()
        try:
            step()
        except curses.error as exc:
            failures.append(exc)
    return failures


@contextlib.contextmanager
def terminal_session() -> Iterator[Tuple[object, Dict[int, int]]]:
    """Put the terminal in raw, full-screen mode for the duration of the block.

    Yields the screen window and the curses attributes to paint with.  The
    terminal is restored on every exit path, including exceptions raised
    inside the block.
    """
    teardown: List[Callable[[], object]] = []
    try:
        stdscr = curses.initscr()
        teardown.append(curses.endwin)
        teardown.append(lambda: curses.curs_set(1))
        curses.noecho()
        teardown.append(curses.echo)
        curses.raw()
        teardown.append(curses.noraw)
        stdscr.keypad(True)
        teardown.append(lambda: stdscr.keypad(False))
        curses.set_escdelay(ESC_DELAY_MS)
        curses.mousemask(curses.ALL_MOUSE_EVENTS | curses.REPORT_MOUSE_POSITION)
        teardown.append(lambda: curses.mousemask(0))
        if curses.has_colors():
            curses.start_color()
            attrs = color_attrs()
        else:
            attrs = default_attrs()
    except curses.error as exc:
        for failure in _restore(teardown):
            logger.debug("terminal restore failed: %s", failure)
        raise TerminalSetupError(f"cannot prepare terminal: {exc}") from exc

    try:
        yield stdscr, attrs
    except BaseException:
        for failure in _restore(teardown):
            logger.debug("terminal restore failed: %s", failure)
        raise
    failures = _restore(teardown)
    if failures:
        raise TerminalTeardownError(
            "cannot restore terminal: " + "; ".join(str(exc) for exc in failures)
        ) from failures[0]


# ----------------------------------------------------------------------
# Application
# ----------------------------------------------------------------------
class TodoApp:
    """Own the todo list and drive the curses interface."""

    def __init__(self, path: Union[str, Path] = TODO_PATH) -> None:
        self.path = Path(path)
        self.state = AppState(todos=load_or_create(self.path))

    def handle_key(self, key: Key) -> bool:
        """Apply one key press.  Returns ``False`` once the list is saved for exit."""
        state = self.state
        if key in ENTER_KEYS:
            state.commit_input()
        elif key == curses.KEY_UP:
            state.retreat_selection()
        elif key == curses.KEY_DOWN:
            state.advance_selection()
        elif key in BACKSPACE_KEYS:
            state.pop_char()
        elif key == KEY_TAB:
            state.remove_selected()
        elif key == KEY_ESC:
            save(self.path, state.todos)
            return False
        elif isinstance(key, str) and key.isprintable():
            state.push_char(key)
        return True

    def run(self) -> None:
        with terminal_session() as (stdscr, attrs):
            self._main_loop(stdscr, attrs)

    def _read_key(self, win) -> Optional[Key]:
        """Block for the next key.  Alt combinations are swallowed.

        Alt+key arrives as ESC immediately followed by the key, so a lone ESC
        is only reported when nothing else is waiting.
        """
        key = win.get_wch()
        if key != KEY_ESC:
            return key
        win.nodelay(True)
        try:
            follow = win.get_wch()
        except curses.error:
            return KEY_ESC
        finally:
            win.nodelay(False)
        logger.debug("ignoring alt sequence %r", follow)
        return None

    def _main_loop(self, win, attrs: Dict[int, int]) -> None:
        while True:
            h, w = win.getmaxyx()
            paint(win, render(self.state, h, w), attrs)
            key = self._read_key(win)
            if key is None or key in (curses.KEY_RESIZE, curses.KEY_MOUSE):
                continue
            if not self.handle_key(key):
                break


def main() -> int:
    logging.basicConfig(level=logging.WARNING, format="todotui: %(levelname)s: %(message)s")
    try:
        TodoApp(TODO_PATH).run()
    except TodoError as exc:
        logger.error("%s", exc)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
