"""
Telegram Formatters

Safe formatting utilities for Telegram messages with HTML support
"""

import html
import re
from typing import List, Optional

MAX_MESSAGE_LENGTH = 4096
SAFE_MESSAGE_LENGTH = 4000  # запас под разметку

_BOLD_RE = re.compile(r"\*\*(?=\S)(.+?)(?<=\S)\*\*|__(?=\S)(.+?)(?<=\S)__")
_CODE_RE = re.compile(r"`([^`\n]+)`")
_HEADING_RE = re.compile(r"^[ \t]{0,3}#{1,6}[ \t]+(.+?)[ \t]*#*[ \t]*$", re.MULTILINE)
_BULLET_RE = re.compile(r"^([ \t]*)[-*+][ \t]+", re.MULTILINE)
_BLANK_LINES_RE = re.compile(r"\n{3,}")


class TelegramFormatter:
    """Форматтер для Telegram сообщений"""

    def escape_html(self, text: Optional[str]) -> str:
        """Экранирование HTML символов (parse_mode=HTML)"""
        if not text:
            return ""
        return html.escape(str(text), quote=False)

    def clean_telegram_text(self, text: str) -> str:
        """Нормализация пробелов: хвостовые пробелы, лишние пустые строки"""
        text = text.replace("\r\n", "\n").replace("\r", "\n")
        text = "\n".join(line.rstrip() for line in text.split("\n"))
        text = _BLANK_LINES_RE.sub("\n\n", text)
        return text.strip()

    def markdown_to_html(self, text: str) -> str:
        """
        Косметический проход для ответа модели: markdown → Telegram HTML.

        Меняется только оформление (жирный, код, заголовки, маркеры
        списков), сам текст остаётся прежним.
        """
        text = self.escape_html(self.clean_telegram_text(text))
        text = _HEADING_RE.sub(lambda m: f"<b>{m.group(1)}</b>", text)
        text = _BOLD_RE.sub(lambda m: f"<b>{m.group(1) or m.group(2)}</b>", text)
        text = _CODE_RE.sub(lambda m: f"<code>{m.group(1)}</code>", text)
        text = _BULLET_RE.sub(lambda m: f"{m.group(1)}• ", text)
        return text

    def markdown_to_html_parts(self, text: str, max_length: int = SAFE_MESSAGE_LENGTH,
                               chunk_length: Optional[int] = None) -> List[str]:
        """
        markdown → HTML для текста длиннее одного сообщения.

        Режем исходный текст и конвертируем каждую часть отдельно, так что
        теги и HTML-сущности никогда не разрываются границей сообщения.
        Если после экранирования часть всё же длиннее max_length, она
        режется мельче.
        """
        chunk_length = chunk_length or max_length
        parts: List[str] = []
        for raw in self.split_message(text, chunk_length):
            converted = self.markdown_to_html(raw)
            if len(converted) > max_length and chunk_length > 1:
                parts.extend(self.markdown_to_html_parts(raw, max_length, chunk_length // 2))
            elif converted:
                parts.append(converted)
        return parts

    def format_progress_bar(self, consumed: float, norm: Optional[float],
                            width: int = 10, filled: str = '■', empty: str = '□') -> str:
        """[■■■□□□□□□□] 30%"""
        if not norm:
            return ""
        percentage = min(100.0, consumed / norm * 100)
        filled_blocks = int(round(percentage / (100 / width)))
        return f"[{filled * filled_blocks}{empty * (width - filled_blocks)}] {percentage:.0f}%"

    def truncate_message(self, text: str, max_length: int = MAX_MESSAGE_LENGTH,
                         suffix: str = "...") -> str:
        """Обрезка сообщения до максимальной длины"""
        if len(text) <= max_length:
            return text

        truncated = text[:max_length - len(suffix)]
        last_space = truncated.rfind(' ')
        if last_space > max_length * 0.8:
            truncated = truncated[:last_space]
        return truncated + suffix

    def split_message(self, text: str, max_length: int = SAFE_MESSAGE_LENGTH) -> List[str]:
        """
        Разбивает длинный текст на части для Telegram

        Сначала по параграфам, потом по строкам, в крайнем случае
        режет строку по длине.
        """
        if len(text) <= max_length:
            return [text]

        parts: List[str] = []
        current = ""

        def flush():
            nonlocal current
            if current.strip():
                parts.append(current.strip())
            current = ""

        for paragraph in text.split("\n\n"):
            if len(paragraph) > max_length:
                for line in paragraph.split("\n"):
                    while len(line) > max_length:
                        flush()
                        parts.append(line[:max_length])
                        line = line[max_length:]
                    if len(current) + len(line) + 1 > max_length:
                        flush()
                    current += line + "\n"
            else:
                if len(current) + len(paragraph) + 2 > max_length:
                    flush()
                current += paragraph + "\n\n"

        flush()
        return parts
