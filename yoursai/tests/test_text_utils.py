import math

import pytest

from yoursai.config.prompt_templates import GREETINGS
from yoursai.src.utils.text_utils import chunk_text, is_greeting, words_per_chunk


def test_words_per_chunk_uses_three_quarters_of_token_budget():
    assert words_per_chunk(500) == 375
    assert words_per_chunk(4) == 3
    assert words_per_chunk(1) == 1


@pytest.mark.parametrize("word_count,max_tokens", [(1, 500), (375, 500), (376, 500), (1000, 500), (7, 4), (12, 4)])
def test_chunk_count_and_sizes(word_count, max_tokens):
    words = [f"w{i}" for i in range(word_count)]
    chunks = chunk_text(" ".join(words), max_tokens)
    budget = words_per_chunk(max_tokens)

    assert len(chunks) == math.ceil(word_count / budget)
    assert all(len(chunk.split()) <= budget for chunk in chunks)
    assert all(len(chunk.split()) == budget for chunk in chunks[:-1])


def test_chunks_rejoin_to_normalised_text():
    text = "  alpha\tbeta\n\ngamma   delta epsilon  zeta\r\neta "
    chunks = chunk_text(text, 4)
    assert " ".join(chunks) == " ".join(text.split())
    assert chunks == ["alpha beta gamma", "delta epsilon zeta", "eta"]


def test_thousand_words_make_three_chunks():
    chunks = chunk_text(" ".join(["word"] * 1000), 500)
    assert [len(c.split()) for c in chunks] == [375, 375, 250]


def test_blank_text_has_no_chunks():
    assert chunk_text("   \n\t ", 500) == []


@pytest.mark.parametrize("message", ["Hello!", "  hello  ", "HI", "hey!", "Good Morning", "good evening!"])
def test_greetings_match(message):
    assert is_greeting(message, GREETINGS)


@pytest.mark.parametrize("message", ["Hello there", "hello!!", "hi?", "good", "morning", "hey you!"])
def test_non_greetings_do_not_match(message):
    assert not is_greeting(message, GREETINGS)
