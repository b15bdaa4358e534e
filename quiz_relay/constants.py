"""
Constants and configuration values for the quiz relay.

This module centralizes selectors, text patterns, timeouts and user-facing
strings so that the extraction engine and the workflow stay free of magic
values.
"""

import re

# Timeouts (milliseconds) used by the page driver
TIMEOUTS = {
    'page_load': 60000,
    'unit_frame': 60000,
    'frame_ready': 30000,
    'content_markers': 60000,
    'launch': 60000
}

# Retry presets: attempts are total tries, delay is seconds between tries
RETRY_POLICIES = {
    'navigation': {'max_attempts': 4, 'delay': 5.0},
    'outbound': {'max_attempts': 3, 'delay': 2.0}
}

# Browser pool defaults
POOL_DEFAULTS = {
    'concurrency': 10,
    'headless': True,
    'launch_args': ['--no-sandbox', '--disable-setuid-sandbox', '--disable-dev-shm-usage']
}

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/129.0.0.0 Safari/537.36"
)

# Tabs pushed by the browser agent are only scraped for these hosts
ALLOWED_URL_PREFIXES = (
    'https://courses.openedu.ru',
    'https://apps.openedu.ru'
)

# CSS selectors for the course unit player
SELECTORS = {
    'unit_frame': 'iframe#unit-iframe',
    'content_markers': ['.xblock', 'div.problem', 'div.vert-mod'],
    'vertical_block': '.xblock.xblock-student_view.xblock-student_view-vertical',
    'vert_mod': 'div.vert-mod',
    'response_wrapper': 'div.problem .wrapper-problem-response',
    'generic_block': '.xblock',
    'problems_wrapper': 'div.problems-wrapper',
    'problem_header': 'h3.problem-header',
    'problem_progress': 'div.problem-progress',
    'problem_container': 'div.problem',
    'sub_question': 'div.wrapper-problem-response > p',
    'text_input': 'input[type="text"]',
    'first_input': [
        'div.choicegroup.capa_inputtype div.field > input, input[type="text"]',
        'div.field > input, div.choicegroup > input'
    ],
    'option_labels': [
        'div.choicegroup.capa_inputtype div.field > label',
        'div.field > label, div.choicegroup > label',
        'div.choicegroup.capa_inputtype div.field > span.answer-answerized',
        'div.field > span'
    ],
    'choice_inputs': [
        'div.choicegroup.capa_inputtype div.field > input',
        'div.field > input, div.choicegroup > input'
    ]
}

# Prefixes stripped from input container ids to obtain question ids
QUESTION_ID_PREFIXES = {
    'text': 'inputtype_',
    'choice': 'input_'
}

# Text patterns
SCORING_ANNOTATION = re.compile(r'^\d+\.\d+/\d+\.\d+\s+points?\s+\((un)?graded\)$')
OPTION_ENUMERATION = re.compile(r'^\d+\.\s*')
HIDDEN_STYLE = re.compile(r'display:\s*none')
BOILERPLATE_PHRASES = frozenset([
    'Какая позиция Вам ближе?'
])
PREVIOUS_ANSWER_PREFIX = 'ОТВЕТ: ОТВЕТ НЕИЗВЕСТЕН'
MIN_CANDIDATE_LENGTH = 5

# Completion collaborator
DEFAULT_MODEL = 'deepseek/deepseek-r1:free'
COMPLETION_MAX_TOKENS = 16000
ANSWER_LINE = re.compile(r'(?:Ответ|Answer)\s+(\d+):\s*(.+)')
ANSWER_PREFIX = re.compile(r'^(?:Ответ|Answer)\s+\d+:\s*')
SYSTEM_PROMPT = (
    'Ты — эксперт. Верни ответы в формате: "Ответ X: [текст]" для текстовых вопросов '
    'или "Ответ X: [цифра]. [текст]" или "Ответ X: [цифра]. [текст], [цифра]. [текст]" '
    'для вопросов с вариантами.'
)
PROMPT_FOOTER = (
    "Дайте точные и полные ответы на русском языке в формате: 'Ответ X: [текст]' "
    "для текстовых вопросов или 'Ответ X: [цифра]. [текст]' или "
    "'Ответ X: [цифра]. [текст], [цифра]. [текст]' для вопросов с вариантами."
)

# Sentinels
UNKNOWN_ANSWER = 'Ответ неизвестен'
PENDING_ANSWER = 'Ответ будет добавлен позже (ошибка ИИ)'
UNTITLED_TAB = 'Без названия'

# Relay
AGENT_COMMAND_ACTIVE_TAB = 'get-active-tab'
RELAY_WAIT = {
    'timeout': 15.0,
    'interval': 0.5
}

# Store namespaces
STORE_KEYS = {
    'session': 'session:',
    'command': 'command:',
    'inbox': 'inbox:',
    'cache': 'cache:',
    'processing': 'processing:',
    'users': 'users'
}

# Chat rendering
QUESTIONS_PER_MESSAGE = 5
PREVIEW_QUESTION_COUNT = 3

CALLBACKS = {
    'get_questions': 'get_questions',
    'refresh': 'refresh_active_tab',
    'select_tab': 'select_tab:',
    'regenerate': 'regenerate:'
}

# File Paths and Names
DEFAULT_PATHS = {
    'config_file': 'config/settings.json',
    'store_file': 'data/sessions.json',
    'logs_dir': 'logs'
}
