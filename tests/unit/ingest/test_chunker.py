"""Tests for the paragraph-aware Chunker."""

from __future__ import annotations

import pytest

from ragdesk.ingest.chunker import Chunker, estimate_tokens, normalize, split_sentences


def _sentence(i: int) -> str:
    """A 199-character sentence (50 estimated tokens)."""
    return f"Fact {i:03d} " + "x" * 189 + "."


def _paragraph(p: int, n: int = 4) -> str:
    return " ".join(_sentence(p * 100 + s) for s in range(n))


def _document(paragraphs: int = 10) -> str:
    return "\n\n".join(_paragraph(p) for p in range(paragraphs))


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


@pytest.mark.parametrize("text,expected", [
    ("", 0),
    ("a", 1),
    ("abcd", 1),
    ("abcde", 2),
    ("x" * 800, 200),
])
def test_estimate_tokens(text, expected):
    assert estimate_tokens(text) == expected


def test_normalize_line_endings_and_blank_runs():
    assert normalize("A\r\nB\n\n\n\nC  \n") == "A\nB\n\nC"


def test_split_sentences():
    assert split_sentences("One. Two! Three?") == ["One.", " Two!", " Three?"]


def test_split_sentences_ignores_unterminated_tail():
    assert split_sentences("One. two") == ["One."]


def test_sentence_fixture_budget():
    assert len(_sentence(1)) == 199
    assert estimate_tokens(_sentence(1)) == 50


# ------------------------------------------------------------------
# Parameters
# ------------------------------------------------------------------


def test_defaults():
    chunker = Chunker()
    assert chunker.target_tokens == 800
    assert chunker.overlap_tokens == 150
    assert chunker.min_chunk_chars == 100


@pytest.mark.parametrize("target,overlap", [(0, 0), (100, -1), (100, 100), (100, 150)])
def test_invalid_parameters_raise(target, overlap):
    with pytest.raises(ValueError):
        Chunker(target_tokens=target, overlap_tokens=overlap)


# ------------------------------------------------------------------
# Splitting
# ------------------------------------------------------------------


def test_empty_input_returns_empty_list():
    assert Chunker().split("") == []
    assert Chunker().split("  \n\n \r\n ") == []


def test_two_short_paragraphs_single_chunk():
    assert Chunker().split("Para A.\n\nPara B.") == ["Para A.\n\nPara B."]


def test_single_short_chunk_kept_below_minimum():
    assert Chunker().split("Hi.") == ["Hi."]


def test_long_document_splits_with_sentence_overlap():
    text = _document(10)
    assert estimate_tokens(text) == pytest.approx(2000, abs=5)

    chunks = Chunker(target_tokens=800, overlap_tokens=150).split(text)

    assert len(chunks) >= 2
    tail = chunks[1].split("\n\n")[0]
    assert tail
    assert chunks[0].endswith(tail)
    assert split_sentences(tail)


def test_overlap_tail_respects_budget():
    chunker = Chunker(target_tokens=800, overlap_tokens=150)
    tail = chunker.overlap_tail(_paragraph(0))
    # Three 50-token sentences fit; a fourth would exceed the budget.
    assert len(split_sentences(tail)) == 3
    assert estimate_tokens(tail) <= 150


def test_overlap_tail_empty_when_last_sentence_too_long():
    chunker = Chunker(target_tokens=100, overlap_tokens=10)
    assert chunker.overlap_tail(_sentence(0)) == ""


def test_chunks_cover_every_paragraph():
    paragraphs = [_paragraph(p) for p in range(10)]
    chunks = Chunker().split("\n\n".join(paragraphs))
    joined = "\n\n".join(chunks)
    for paragraph in paragraphs:
        assert paragraph in joined


def test_chunks_respect_target_in_paragraph_mode():
    chunks = Chunker(target_tokens=800, overlap_tokens=150).split(_document(10))
    # Budget covers paragraph sums plus the carried overlap and separators.
    assert all(estimate_tokens(c) <= 800 + 150 + 10 for c in chunks)


def test_large_paragraph_split_by_sentence():
    sentences = [_sentence(i) for i in range(30)]
    paragraph = " ".join(sentences)
    assert estimate_tokens(paragraph) > 800 * 1.2

    chunks = Chunker(target_tokens=800, overlap_tokens=150).split(paragraph)

    assert len(chunks) >= 2
    for first, second in zip(chunks, chunks[1:]):
        opening = split_sentences(second)[0].strip()
        assert opening in first
    for sentence in sentences:
        assert any(sentence in c for c in chunks)


def test_large_paragraph_flushes_running_chunk():
    small = " ".join(["Intro sentence here."] * 8)
    big = " ".join(_sentence(i) for i in range(30))
    chunks = Chunker().split(f"{small}\n\n{big}")
    assert chunks[0] == small


def test_large_paragraph_keeps_unterminated_tail():
    big = " ".join(_sentence(i) for i in range(30)) + " trailing words without a stop"
    chunks = Chunker().split(big)
    assert chunks[-1].endswith("trailing words without a stop")


def test_large_paragraph_without_sentences_kept_whole():
    blob = "y" * 5000
    assert Chunker().split(blob) == [blob]


def test_small_chunks_dropped_when_several():
    # Tight budget: the last paragraph forms its own short chunk.
    long_para = "A" * 395 + "."
    text = f"{long_para}\n\nTiny."
    chunks = Chunker(target_tokens=100, overlap_tokens=0).split(text)
    assert chunks == [long_para]
    assert all(len(c) > 100 for c in chunks)


def test_filter_never_empties_result():
    text = "One.\n\nTwo.\n\nThree."
    chunks = Chunker(target_tokens=1, overlap_tokens=0).split(text)
    assert chunks == ["One.", "Two.", "Three."]
