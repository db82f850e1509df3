"""Tests for style analysis."""

import asyncio

import pytest

from novelstudio.ai.style_analyzer import SAMPLE_LIMIT, StyleAnalyzer
from novelstudio.core.exceptions import UserInputError


def test_basic_analysis_cjk():
    stats = StyleAnalyzer().basic_analysis("他说：“你好。”她笑了。")

    assert stats["total_words"] == 12
    assert stats["total_sentences"] == 2
    assert stats["dialogue_ratio"] == pytest.approx(5 / 12)


def test_basic_analysis_empty():
    stats = StyleAnalyzer().basic_analysis("")

    assert stats["total_words"] == 0
    assert stats["avg_sentence_length"] == 0
    assert stats["dialogue_ratio"] == 0.0


def test_analyze_sample_returns_active_mimicry(fake_client):
    fake_client.queue("  句子短促，多用白描。  ")

    mimicry = asyncio.run(StyleAnalyzer(fake_client).analyze_sample("字" * (SAMPLE_LIMIT + 500)))

    assert mimicry.active
    assert mimicry.custom_style_prompt == "句子短促，多用白描。"
    assert "字" * SAMPLE_LIMIT in fake_client.prompts[0]
    assert "字" * (SAMPLE_LIMIT + 1) not in fake_client.prompts[0]


def test_analyze_sample_needs_backend_and_text(fake_client):
    with pytest.raises(UserInputError):
        asyncio.run(StyleAnalyzer().analyze_sample("text"))
    with pytest.raises(UserInputError):
        asyncio.run(StyleAnalyzer(fake_client).analyze_sample("   "))
