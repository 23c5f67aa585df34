"""Recover the analyzer's JSON report from its raw text reply.

The analyzer routinely writes LaTeX inside JSON strings (``\\frac``, ``\\sqrt``,
``\\text``). ``\\s`` is not a JSON escape so ``json.loads`` rejects it, and
``\\f``/``\\b``/``\\n``/``\\r``/``\\t`` are valid escapes that would silently turn
``\\frac`` into a form feed followed by ``rac``. Every string literal is
therefore rewritten before parsing so that notation backslashes survive as
literal backslashes.
"""
from __future__ import annotations
import json
import re
from typing import Any

from .errors import MalformedResponse

_CODE_FENCE = re.compile(r"```(?:json)?\s*\n?([\s\S]*?)\n?\s*```")

# Escapes that are always valid and never start a notation command.
_PLAIN_ESCAPES = ('"', "\\", "/")
# Single-letter JSON escapes that are also the first letter of LaTeX commands.
_OVERLOADED_ESCAPES = "bfnrt"


def _is_ascii_letter(ch: str) -> bool:
	return ("a" <= ch <= "z") or ("A" <= ch <= "Z")


def sanitize_escapes(text: str) -> str:
	out: list[str] = []
	in_string = False
	i = 0
	n = len(text)
	while i < n:
		ch = text[i]
		if not in_string:
			if ch == '"':
				in_string = True
			out.append(ch)
			i += 1
			continue

		if ch == '"':
			in_string = False
			out.append(ch)
			i += 1
		elif ch == "\\":
			nxt = text[i + 1] if i + 1 < n else None
			if nxt is None:
				out.append("\\\\")
				i += 1
			elif nxt in _PLAIN_ESCAPES:
				out.append(ch + nxt)
				i += 2
			elif nxt == "u":
				out.append(text[i : i + 6])
				i += 6
			elif nxt in _OVERLOADED_ESCAPES:
				after = text[i + 2] if i + 2 < n else ""
				if after and _is_ascii_letter(after):
					# \frac, \binom, \newline, \rho, \text ...
					out.append("\\\\" + nxt)
				else:
					out.append(ch + nxt)
				i += 2
			else:
				# \sqrt, \log, \int ... are not JSON escapes at all
				out.append("\\\\" + nxt)
				i += 2
		else:
			out.append(ch)
			i += 1
	return "".join(out)


def extract_json_text(raw: str) -> str:
	text = raw.strip()
	fenced = _CODE_FENCE.search(text)
	if fenced:
		text = fenced.group(1).strip()
	if not text.startswith("{") and not text.startswith("["):
		first = text.find("{")
		last = text.rfind("}")
		if first != -1 and last != -1:
			text = text[first : last + 1]
	return text


def decode_analyzer_text(raw: str) -> Any:
	"""Parse an analyzer reply, tolerating code fences, chatter and LaTeX.

	Raises:
		MalformedResponse: if nothing parseable remains after sanitizing.
	"""
	if raw is None:
		raise MalformedResponse("analyzer reply is empty", raw_text="")
	candidate = sanitize_escapes(extract_json_text(raw))
	try:
		return json.loads(candidate)
	except json.JSONDecodeError as e:
		raise MalformedResponse(
			f"analyzer reply is not valid JSON: {e.msg} at line {e.lineno}, column {e.colno}",
			raw_text=raw,
		) from e
