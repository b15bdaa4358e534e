"""
Chat-side contract and message rendering.

The orchestrator talks to the chat front-end only through ``ChatGateway``.
Messages are Telegram-style HTML; buttons are rows of
``(label, callback_data)`` pairs.
"""

from abc import ABC, abstractmethod
from typing import Any, List, Optional, Sequence, Tuple

from ..constants import CALLBACKS, PREVIEW_QUESTION_COUNT, QUESTIONS_PER_MESSAGE
from ..models import Question, Tab
from ..utils.text_processor import TextProcessor

Button = Tuple[str, str]
Buttons = List[List[Button]]

GREETING = 'Привет! Я помогу с тестами. Нажми "Получить вопросы"'
START_FIRST = 'Пожалуйста, начните с /start'
PROCESSING = 'Начинаю обработку...'
PLEASE_WAIT = 'Ожидайте...'
NO_ACTIVE_TAB = 'Активная вкладка с тестом не найдена.'
TAB_DATA_MISSING = 'Ошибка: данные вкладки не найдены. Попробуйте начать заново с /start.'
NO_QUESTIONS = 'На странице не найдено ни одного вопроса. Попробуйте обновить вкладку.'
ALL_PROCESSED = ('Все вопросы обработаны! Если вы хотите перегенерировать ответ на конкретный вопрос, '
                 'используйте кнопки выше.')
INVALID_QUESTION_NUMBER = 'Некорректный номер вопроса или вопросы не найдены.'
MESSAGE_NOT_FOUND = 'Не удалось обновить сообщение. Попробуйте снова.'
UNKNOWN_ACTION = 'Неизвестное действие.'


class ChatGateway(ABC):
    """Transport used to talk to a chat; implemented by the bot front-end."""

    @abstractmethod
    async def send_message(self, chat_id: str, text: str, buttons: Optional[Buttons] = None) -> Any:
        """
        Send a message and return a handle that ``edit_message`` accepts.

        Handles are kept in the session record, so they must be
        JSON-compatible (a message id, not a library message object).
        """
        pass

    @abstractmethod
    async def edit_message(self, chat_id: str, handle: Any, text: str,
                           buttons: Optional[Buttons] = None) -> None:
        pass


def error_message(reason: str) -> str:
    return f"Ошибка: {reason}. Попробуй снова."


def regenerate_failed_message(question_number: int) -> str:
    return f"Не удалось перегенерировать ответ на вопрос {question_number}. Попробуйте еще раз."


def greeting_buttons() -> Buttons:
    return [[('Получить вопросы', CALLBACKS['get_questions'])]]


def _numbered(options: Sequence[str]) -> str:
    return '\n'.join(f"{i}. {TextProcessor.escape_html(o)}" for i, o in enumerate(options, 1))


def render_preview(tab: Tab) -> Tuple[str, Buttons]:
    """First questions of a discovered tab, so the user can confirm it is theirs."""
    message = f"Активная вкладка: {TextProcessor.escape_html(tab.title)}\n\n"
    for index, question in enumerate(tab.questions[:PREVIEW_QUESTION_COUNT], 1):
        text = f"Вопрос {index}: {TextProcessor.escape_html(question.text)}"
        if question.options:
            text += "\n" + _numbered(question.options)
        message += f"<blockquote expandable>{text}</blockquote>\n\n"
    message += 'Проверьте, ваши ли это вопросы, и выберите действие:'

    buttons = [
        [('Получить ответы', f"{CALLBACKS['select_tab']}0")],
        [('Обновить', CALLBACKS['refresh'])]
    ]
    return message, buttons


def batch_starts(count: int) -> List[int]:
    """Zero-based index of the first question of every batch."""
    return list(range(0, count, QUESTIONS_PER_MESSAGE))


def batch_start_for(question_number: int) -> int:
    """Batch holding a 1-based question number."""
    return ((question_number - 1) // QUESTIONS_PER_MESSAGE) * QUESTIONS_PER_MESSAGE


def render_batch(questions: Sequence[Question], start: int,
                 regenerated: Optional[int] = None) -> Tuple[str, Buttons]:
    """
    Render questions ``start`` .. ``start + 4`` with their answers.

    Args:
        questions: Every question of the session, answered
        start: Zero-based index of the first question of the batch
        regenerated: 1-based number of a question whose answer was just
            regenerated; its answer is labelled as new

    Returns:
        Message text and one regenerate button per question
    """
    end = min(start + QUESTIONS_PER_MESSAGE, len(questions))
    message = ''
    buttons: Buttons = []
    for index in range(start, end):
        question = questions[index]
        number = index + 1
        label = 'Новый ответ' if number == regenerated else 'Ответ'
        answer = TextProcessor.escape_html(TextProcessor.strip_answer_prefix(question.answer))

        message += f"<b>Вопрос {number}: {TextProcessor.escape_html(question.text)}</b>\n\n"
        message += f"<b>{label}: {answer}</b>\n"
        if question.options:
            message += f"<blockquote expandable>Варианты:\n{_numbered(question.options)}</blockquote>"
        message += '\n\n'
        buttons.append([(f"Перегенерировать ответ {number}", f"{CALLBACKS['regenerate']}{number}")])
    return message, buttons
