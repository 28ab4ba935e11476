import subprocess
import sys
from pathlib import Path

import pytest
from pydantic import ValidationError

from meditranslate.schemas import Conversation, NewMessage

ROOT = Path(__file__).resolve().parents[1]


def test_schemas_import_without_deprecation_warnings():
    completed = subprocess.run(
        [sys.executable, "-W", "error::DeprecationWarning", "-c", "import meditranslate.schemas"],
        cwd=ROOT,
        capture_output=True,
        text=True,
    )

    assert completed.returncode == 0, completed.stderr


def test_stored_records_are_immutable(conversation):
    with pytest.raises(ValidationError):
        conversation.doctor_language = "fr"

    message = NewMessage(conversation_id=conversation.id, sender_role="doctor", original_text="Hi")
    with pytest.raises(ValidationError):
        message.original_text = "Bye"
    assert isinstance(conversation, Conversation)
