from quiz_relay.models import Question, QuestionKind, Tab
from quiz_relay.workflow import messages

from tests.conftest import make_questions


def answered(count):
    return [q.with_answer(f"Ответ {i}: answer {i}") for i, q in enumerate(make_questions(count), 1)]


def test_batch_arithmetic():
    assert messages.batch_starts(0) == []
    assert messages.batch_starts(5) == [0]
    assert messages.batch_starts(11) == [0, 5, 10]
    assert [messages.batch_start_for(n) for n in (1, 5, 6, 10, 11)] == [0, 0, 5, 5, 10]


def test_batch_holds_five_questions_with_controls():
    text, buttons = messages.render_batch(answered(7), 0)
    assert text.count('<b>Вопрос') == 5
    assert '<b>Вопрос 1: Explain topic 1</b>' in text
    assert '<b>Ответ: answer 1</b>' in text
    assert buttons == [[(f"Перегенерировать ответ {n}", f"regenerate:{n}")] for n in range(1, 6)]


def test_last_batch_is_partial():
    text, buttons = messages.render_batch(answered(7), 5)
    assert '<b>Вопрос 6: Explain topic 6</b>' in text
    assert '<b>Вопрос 7: Explain topic 7</b>' in text
    assert [row[0][1] for row in buttons] == ['regenerate:6', 'regenerate:7']


def test_options_are_listed_in_expandable_quote():
    text, _ = messages.render_batch(answered(3), 0)
    assert '<blockquote expandable>Варианты:\n1. Alpha\n2. Beta</blockquote>' in text


def test_regenerated_answer_is_labelled():
    questions = answered(3)
    text, _ = messages.render_batch(questions, 0, regenerated=2)
    assert '<b>Новый ответ: answer 2</b>' in text
    assert '<b>Ответ: answer 1</b>' in text
    assert text.count('Новый ответ') == 1


def test_html_is_escaped():
    question = Question(text='Is 1 < 2 & 3 > 2?', kind=QuestionKind.TEXT, answer='yes <b>')
    text, _ = messages.render_batch([question], 0)
    assert 'Is 1 &lt; 2 &amp; 3 &gt; 2?' in text
    assert 'yes &lt;b&gt;' in text


def test_preview_shows_at_most_three_questions():
    tab = Tab(url='https://courses.openedu.ru/u', title='Unit <1>', questions=tuple(make_questions(5)))
    text, buttons = messages.render_preview(tab)
    assert text.startswith('Активная вкладка: Unit &lt;1&gt;\n\n')
    assert text.count('<blockquote expandable>') == 3
    assert 'Вопрос 3: Choose option for question 3\n1. Alpha\n2. Beta' in text
    assert 'Вопрос 4' not in text
    assert buttons == [[('Получить ответы', 'select_tab:0')], [('Обновить', 'refresh_active_tab')]]


def test_greeting_control():
    assert messages.greeting_buttons() == [[('Получить вопросы', 'get_questions')]]
