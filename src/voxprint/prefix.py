from __future__ import annotations

from typing import Callable, Optional

from .options import PLAIN_BREAKS, BreakFormat, Options, xml_escape

PrefixFormatter = Callable[[int, int], str]


def _tier(value: int) -> int:
    # Out-of-range tiers behave like the nearest defined one below them.
    return max(0, min(2, int(value)))


def none_formatter(number: int, offset: int) -> str:
    return ""


def linenumber_formatter(fmt: str, brk: str, escape: bool = False) -> PrefixFormatter:
    def _format(number: int, offset: int) -> str:
        text = fmt.format(n=number + offset)
        return (xml_escape(text) if escape else text) + brk

    return _format


def relativenumber_formatter(fmt: str, brk: str, escape: bool = False) -> PrefixFormatter:
    def _format(number: int, offset: int) -> str:
        if offset == 0:
            return ""
        text = fmt.format(n=offset)
        return (xml_escape(text) if escape else text) + brk

    return _format


def make_prefix_formatter(
    options: Options,
    number_flag: Optional[bool],
    *,
    number_display: bool = False,
    relativenumber_display: bool = False,
    breaks: Optional[BreakFormat] = None,
) -> PrefixFormatter:
    """Pick the per-line announcement for one print invocation.

    `number_flag` True is an explicit numbering request ('#'), False turns
    numbering off, None follows the configured tiers and the live displays.
    """
    breaks = breaks or PLAIN_BREAKS
    absolute = linenumber_formatter(options.numberformat, breaks.prefix, breaks.markup)
    relative = relativenumber_formatter(options.relativenumberformat, breaks.prefix, breaks.markup)

    if number_flag is True:
        tier = _tier(options.explicitnumber)
        if tier == 0:
            return none_formatter
        if tier == 1:
            return absolute
        return relative

    if number_flag is False:
        return none_formatter

    rel = _tier(options.relativenumber)
    if rel == 2 or (rel == 1 and relativenumber_display):
        return relative
    num = _tier(options.number)
    if num == 2 or (num == 1 and number_display):
        return absolute
    return none_formatter
