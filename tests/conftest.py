import random
import threading

import pytest

from config import BoardConfig
from errors import FetchFailure
from jservice import parse_category


def make_clue_payload(clue_id, value, question=None, answer=None, invalid_count=None):
    return {
        "id": clue_id,
        "question": question if question is not None else f"Question {clue_id}",
        "answer": answer if answer is not None else f"Answer {clue_id}",
        "value": value,
        "invalid_count": invalid_count,
    }


def make_category_payload(category_id, values=(200, 400, 600, 800, 1000), title=None):
    clues = [
        make_clue_payload(category_id * 100 + i, v, question=f"Cat {category_id} question {i}")
        for i, v in enumerate(values)
    ]
    return {
        "id": category_id,
        "title": title if title is not None else f"category {category_id}",
        "clues_count": len(clues),
        "clues": clues,
    }


class FakeClient:
    """
    Stands in for JServiceClient. `responder(category_id)` returns a payload
    dict (parsed like a real response) or a FetchFailure.
    """

    def __init__(self, responder=None):
        self.responder = responder or (lambda cid: make_category_payload(cid))
        self.calls = []
        self._lock = threading.Lock()

    def fetch(self, category_id):
        with self._lock:
            self.calls.append(category_id)
        result = self.responder(category_id)
        if isinstance(result, FetchFailure):
            return result
        return parse_category(result)


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def config():
    return BoardConfig(fetch_workers=1, assemble_in_background=False)


@pytest.fixture
def fake_client():
    return FakeClient()
