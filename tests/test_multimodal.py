"""Tests for multimodal input summarization."""

import base64
import os

import pytest

from tutorcore.api.multimodal import file_input_manager
from tutorcore.api.multimodal.file_input_manager import UnsupportedInput, summarize_input
from tutorcore.core.routing_types import MultimodalInput


@pytest.fixture
def upload_dir(tmp_path, monkeypatch):
    base = os.path.realpath(tmp_path / "uploads")
    os.makedirs(base)
    monkeypatch.setattr(file_input_manager, "ALLOWED_FILE_BASE_DIR", base)
    return base


class TestSummarizeInput:
    def test_text_is_passed_through(self):
        assert summarize_input(MultimodalInput(type="text", data="  some notes  ")) == "some notes"

    def test_long_text_is_truncated(self):
        summary = summarize_input(MultimodalInput(type="text", data="x" * 50), max_chars=10)
        assert summary == "x" * 10 + " [truncated]"

    def test_audio_is_acknowledged(self):
        summary = summarize_input(MultimodalInput(type="audio", data="clip", mime_type="audio/wav"))
        assert "audio/wav" in summary

    def test_unknown_type(self):
        with pytest.raises(UnsupportedInput):
            summarize_input(MultimodalInput(type="video", data="clip.mp4"))

    def test_text_file_inside_upload_dir(self, upload_dir):
        path = os.path.join(upload_dir, "notes.txt")
        with open(path, "w", encoding="utf-8") as f:
            f.write("The mitochondria is the powerhouse of the cell.")
        summary = summarize_input(MultimodalInput(type="document", data=path))
        assert summary == "The mitochondria is the powerhouse of the cell."

    def test_file_url(self, upload_dir):
        path = os.path.join(upload_dir, "notes.txt")
        with open(path, "w", encoding="utf-8") as f:
            f.write("hello")
        assert summarize_input(MultimodalInput(type="document", data=f"file://{path}")) == "hello"

    def test_path_outside_upload_dir_is_denied(self, upload_dir, tmp_path):
        outside = tmp_path / "secret.txt"
        outside.write_text("nope", encoding="utf-8")
        with pytest.raises(ValueError):
            summarize_input(MultimodalInput(type="document", data=str(outside)))

    def test_missing_file(self, upload_dir):
        with pytest.raises(UnsupportedInput):
            summarize_input(MultimodalInput(type="document", data=os.path.join(upload_dir, "gone.txt")))

    def test_unsupported_extension(self, upload_dir):
        path = os.path.join(upload_dir, "tool.exe")
        with open(path, "wb") as f:
            f.write(b"MZ")
        with pytest.raises(UnsupportedInput):
            summarize_input(MultimodalInput(type="document", data=path))

    def test_data_url_is_decoded_and_removed(self, upload_dir):
        encoded = base64.b64encode(b"inline document text").decode("ascii")
        item = MultimodalInput(type="document", data=f"data:text/plain;base64,{encoded}")
        assert summarize_input(item) == "inline document text"
        assert os.listdir(upload_dir) == []

    def test_csv_document(self, upload_dir):
        path = os.path.join(upload_dir, "scores.csv")
        with open(path, "w", encoding="utf-8") as f:
            f.write("name,score\nada,9\nalan,8\n")
        summary = summarize_input(MultimodalInput(type="document", data=path))
        assert "ada" in summary and "score" in summary
