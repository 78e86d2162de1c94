"""
Message Service

Централизованные тексты бота: JSON шаблоны (Jinja2) + клавиатуры
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from aiogram.types import (
    InlineKeyboardButton,
    InlineKeyboardMarkup,
    KeyboardButton,
    ReplyKeyboardMarkup,
)
from jinja2 import Environment, TemplateError

from systems.effects import Prompt
from .formatters import MAX_MESSAGE_LENGTH, TelegramFormatter

logger = logging.getLogger(__name__)

DEFAULT_LOCALE = "ru"
MAX_CALLBACK_DATA_BYTES = 64

# Форматы callback_data
WIZARD_PREFIX = "wiz"
TOKEN_PREFIX = "tok"
MENU_PREFIX = "menu"
STATS_PREFIX = "stats"


class MessageService:
    """Централизованный сервис сообщений"""

    def __init__(self, templates_dir: Optional[str] = None, debug_mode: bool = False):
        if templates_dir is None:
            templates_dir = Path(__file__).parent / "templates"

        self.templates_dir = Path(templates_dir)
        self.debug_mode = debug_mode
        self.formatter = TelegramFormatter()

        self.jinja_env = Environment(
            autoescape=False,  # экранируем сами через |e в шаблонах
            trim_blocks=True,
            lstrip_blocks=True
        )

        self._templates_cache: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._keyboards_cache: Dict[str, Dict[str, Any]] = {}

        self._load_all_templates()
        logger.info(f"MessageService initialized with templates from {self.templates_dir}")

    def _load_all_templates(self):
        if not self.templates_dir.exists():
            logger.warning(f"Templates directory not found: {self.templates_dir}")
            return

        for locale_dir in sorted(self.templates_dir.iterdir()):
            if locale_dir.is_dir():
                self._load_locale_templates(locale_dir.name)

    def _load_locale_templates(self, locale: str):
        locale_path = self.templates_dir / locale
        self._templates_cache[locale] = {}
        self._keyboards_cache[locale] = {}

        for json_file in sorted(locale_path.glob("*.json")):
            try:
                with json_file.open("r", encoding="utf-8") as f:
                    data = json.load(f)
            except (json.JSONDecodeError, IOError) as e:
                logger.error(f"Failed to load {json_file}: {e}")
                continue

            category = json_file.stem
            if "keyboards" in data:
                self._keyboards_cache[locale].update(data.pop("keyboards"))
            if data:
                self._templates_cache[locale][category] = data

            logger.debug(f"Loaded templates for {locale}/{category}")

    # ========================================================================
    # MESSAGES
    # ========================================================================

    def get_message(self, key: str, locale: str = DEFAULT_LOCALE,
                    category: str = "general", **kwargs) -> str:
        """Получить сообщение с подстановкой переменных"""
        template_data = self._get_template_data(key, locale, category)
        if not template_data:
            logger.warning(f"Missing template {locale}.{category}.{key}")
            return f"[MISSING: {locale}.{category}.{key}]"

        template_str = template_data.get("template", "")
        if not template_str:
            return f"[EMPTY_TEMPLATE: {locale}.{category}.{key}]"

        try:
            rendered = self.jinja_env.from_string(template_str).render(**kwargs)
        except TemplateError as e:
            logger.error(f"Error rendering template {locale}.{category}.{key}: {e}")
            return f"[TEMPLATE_ERROR: {key}]"

        cleaned = self.formatter.clean_telegram_text(rendered)

        if self.debug_mode and category != "prompts":
            cleaned += f"\n─────────────────────\n🔧 <b>DEBUG:</b> <code>{key}</code> | <i>{category}.json</i>"

        if len(cleaned) > MAX_MESSAGE_LENGTH:
            cleaned = self.formatter.truncate_message(cleaned)
            logger.warning(f"Message truncated: {locale}.{category}.{key}")

        return cleaned

    def get_prompt(self, key: str, locale: str = DEFAULT_LOCALE, **kwargs) -> str:
        """Системный промпт для модели (prompts.json)"""
        return self.get_message(key, locale, "prompts", **kwargs)

    def get_available_locales(self) -> List[str]:
        return list(self._templates_cache.keys())

    def _get_template_data(self, key: str, locale: str, category: str) -> Optional[Dict[str, Any]]:
        """Шаблон с fallback: другая категория той же локали, затем ru"""
        for loc in (locale, DEFAULT_LOCALE) if locale != DEFAULT_LOCALE else (locale,):
            categories = self._templates_cache.get(loc, {})
            if key in categories.get(category, {}):
                return categories[category][key]
            for cat_name, cat_data in categories.items():
                if key in cat_data:
                    logger.debug(f"Found {key} in category {cat_name} instead of {category}")
                    return cat_data[key]
        return None

    # ========================================================================
    # KEYBOARDS
    # ========================================================================

    def get_keyboard(self, keyboard_key: str, locale: str = DEFAULT_LOCALE):
        """Готовая клавиатура из keyboards секции (inline или reply)"""
        keyboard_data = (self._keyboards_cache.get(locale, {}).get(keyboard_key)
                         or self._keyboards_cache.get(DEFAULT_LOCALE, {}).get(keyboard_key))
        if not keyboard_data:
            logger.warning(f"Keyboard not found: {locale}.{keyboard_key}")
            return None

        if keyboard_data.get("type") == "reply":
            return ReplyKeyboardMarkup(
                keyboard=[[KeyboardButton(text=b["text"]) for b in row]
                          for row in keyboard_data.get("buttons", [])],
                resize_keyboard=True,
                is_persistent=True,
            )
        return self._build_inline_keyboard(keyboard_data.get("buttons", []))

    def menu_action(self, text: str, locale: str = DEFAULT_LOCALE) -> Optional[str]:
        """Текст кнопки главного меню → action ("photo", "manual", "stats", ...)"""
        keyboard_data = (self._keyboards_cache.get(locale, {}).get("main_menu")
                         or self._keyboards_cache.get(DEFAULT_LOCALE, {}).get("main_menu")
                         or {})
        for row in keyboard_data.get("buttons", []):
            for button in row:
                if button.get("text") == text.strip():
                    return button.get("action")
        return None

    def build_choice_keyboard(self, prompt: Prompt, locale: str = DEFAULT_LOCALE
                              ) -> Optional[InlineKeyboardMarkup]:
        """Кнопки вариантов шага визарда: wiz:<state>:<value>"""
        if not prompt.choices:
            return None

        rows = []
        for choice in prompt.choices:
            label = choice.label
            if prompt.multi and choice.value in prompt.selected:
                label = f"✅ {label}"
            rows.append([{"text": label,
                          "callback_data": f"{WIZARD_PREFIX}:{prompt.state}:{choice.value}"}])

        if prompt.multi:
            rows.append([{"text": self.get_message("button_done", locale, "wizards"),
                          "callback_data": f"{WIZARD_PREFIX}:done:{prompt.state}"}])
        rows.append([{"text": self.get_message("button_cancel", locale, "wizards"),
                      "callback_data": f"{WIZARD_PREFIX}:cancel"}])
        return self._build_inline_keyboard(rows)

    def build_confirm_keyboard(self, token: str, locale: str = DEFAULT_LOCALE) -> InlineKeyboardMarkup:
        """Да / Нет для ProposeRecord: tok:accept:<token> / tok:reject:<token>"""
        return self._build_inline_keyboard([[
            {"text": self.get_message("button_accept", locale, "dispatch"),
             "callback_data": f"{TOKEN_PREFIX}:accept:{token}"},
            {"text": self.get_message("button_reject", locale, "dispatch"),
             "callback_data": f"{TOKEN_PREFIX}:reject:{token}"},
        ]])

    def _build_inline_keyboard(self, buttons_data: List[List[Dict[str, Any]]]) -> InlineKeyboardMarkup:
        keyboard = []
        for row in buttons_data:
            button_row = []
            for button_config in row:
                text = button_config.get("text", "")
                callback_data = button_config.get("callback_data", "")
                url = button_config.get("url")

                if not text:
                    logger.warning(f"Button without text: {button_config}")
                    continue

                if callback_data:
                    if len(callback_data.encode("utf-8")) > MAX_CALLBACK_DATA_BYTES:
                        logger.warning(f"callback_data too long, skipped: {callback_data}")
                        continue
                    button_row.append(InlineKeyboardButton(text=text, callback_data=callback_data))
                elif url:
                    button_row.append(InlineKeyboardButton(text=text, url=url))
                else:
                    logger.warning(f"Button without callback_data or url: {button_config}")

            if button_row:
                keyboard.append(button_row)

        return InlineKeyboardMarkup(inline_keyboard=keyboard)
