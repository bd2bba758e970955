"""
Translator tool for profile descriptions.

Two passes:
1. Decode obfuscated segments in place: Morse code ("... --- ...") and
   8-bit binary ("01101000 01101001").
2. Translate the whole decoded text with the public Google translate
   endpoint (client=gtx), unless langdetect says it is already in the
   target language.

Network and parse errors are raised to the caller; the content classifier
decides what to do with them.
"""

import logging
from typing import List, Optional

import httpx
from langdetect import detect, LangDetectException
from langdetect import DetectorFactory
DetectorFactory.seed = 0  # Deterministic language detection

from ..config import Settings, get_settings

logger = logging.getLogger(__name__)


MORSE_TO_TEXT = {
    ".-": "A", "-...": "B", "-.-.": "C", "-..": "D", ".": "E",
    "..-.": "F", "--.": "G", "....": "H", "..": "I", ".---": "J",
    "-.-": "K", ".-..": "L", "--": "M", "-.": "N", "---": "O",
    ".--.": "P", "--.-": "Q", ".-.": "R", "...": "S", "-": "T",
    "..-": "U", "...-": "V", ".--": "W", "-..-": "X", "-.--": "Y",
    "--..": "Z", ".----": "1", "..---": "2", "...--": "3", "....-": "4",
    ".....": "5", "-....": "6", "--...": "7", "---..": "8", "----.": "9",
    "-----": "0", "..--..": "?", "-.-.--": "!", ".-.-.-": ".",
    "--..--": ",", "---...": ":", ".----.": "'", ".-..-.": "\"",
}

_MORSE_CHARS = frozenset(".-/ ")


def is_morse(text: str) -> bool:
    """Only dots, dashes, slashes and spaces, with at least one dot or dash."""
    return bool(text) and set(text) <= _MORSE_CHARS and ("." in text or "-" in text)


def is_binary(text: str) -> bool:
    """Whole bytes of 0/1 digits, spaces ignored."""
    cleaned = text.replace(" ", "")
    return bool(cleaned) and len(cleaned) % 8 == 0 and set(cleaned) <= {"0", "1"}


def decode_morse(morse: str) -> str:
    """Letters separated by spaces, words by '/'. Unknown letters are dropped."""
    words = []
    for word in morse.split("/"):
        letters = [MORSE_TO_TEXT.get(letter, "") for letter in word.split()]
        words.append("".join(letters))
    return " ".join(words)


def decode_binary(binary: str) -> str:
    """Decode space-separated 8-bit groups. Raises ValueError on a partial byte."""
    cleaned = binary.replace(" ", "")
    if len(cleaned) % 8:
        raise ValueError("invalid binary string: incomplete byte")
    return "".join(chr(int(cleaned[i:i + 8], 2)) for i in range(0, len(cleaned), 8))


def _split_segments(line: str) -> List[str]:
    """Group consecutive words that share the same format (morse/binary/plain)."""
    segments: List[str] = []
    current: List[str] = []
    prev_kind = None
    for word in line.split():
        kind = (is_morse(word), is_binary(word))
        if current and kind != prev_kind:
            segments.append(" ".join(current))
            current = []
        current.append(word)
        prev_kind = kind
    if current:
        segments.append(" ".join(current))
    return segments


def decode_obfuscated(text: str) -> str:
    """Replace Morse and binary segments with their plain-text decoding, line by line."""
    out_lines = []
    for line in text.strip().split("\n"):
        parts = []
        for segment in _split_segments(line):
            if is_morse(segment):
                parts.append(decode_morse(segment))
                continue
            if is_binary(segment):
                try:
                    parts.append(decode_binary(segment))
                    continue
                except ValueError:
                    pass
            parts.append(segment)
        out_lines.append(" ".join(parts))
    return "\n".join(out_lines)


class TranslatorTool:
    """Translator capability backed by httpx.

    Pass `client` to reuse a connection pool (or a mock transport in tests);
    otherwise a short-lived AsyncClient is opened per call.
    """

    def __init__(self, settings: Optional[Settings] = None, client: Optional[httpx.AsyncClient] = None):
        self.settings = settings or get_settings()
        self._client = client

    @staticmethod
    def _is_target_language(text: str, target_lang: str) -> bool:
        """True when langdetect is confident the text is already in `target_lang`.

        Short or ambiguous text is sent for translation.
        """
        if not text or len(text.strip()) < 20:
            return False
        try:
            return detect(text[:500]) == target_lang
        except LangDetectException:
            return False

    async def translate(self, text: str, source: str = "auto", target: str = "en") -> str:
        """Decode obfuscated segments, then translate `text` from `source` to `target`."""
        if not text or not text.strip():
            return text

        decoded = decode_obfuscated(text)
        if not source or not target:
            return decoded
        if self._is_target_language(decoded, target):
            return decoded

        return await self._translate_language(decoded, source, target)

    async def _translate_language(self, text: str, source: str, target: str) -> str:
        params = {"client": "gtx", "sl": source, "tl": target, "dt": "t", "q": text}
        if self._client is not None:
            response = await self._client.get(self.settings.translation_url, params=params)
        else:
            async with httpx.AsyncClient(timeout=self.settings.translation_timeout_seconds) as client:
                response = await client.get(self.settings.translation_url, params=params)
        response.raise_for_status()
        return self._parse_response(response.json())

    @staticmethod
    def _parse_response(data) -> str:
        """Join the translated chunks of a gtx response ([[["chunk", "src", ...], ...], ...])."""
        try:
            return "".join(chunk[0] for chunk in data[0] if chunk and chunk[0])
        except (TypeError, IndexError, KeyError) as e:
            raise ValueError(f"Unexpected translate response shape: {e}") from e
