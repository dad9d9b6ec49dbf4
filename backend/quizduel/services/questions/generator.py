"""
Client for the external question generator.

The generator is a text-generation REST service. We ask it for a JSON
batch, pull the JSON document out of the reply text and validate its
shape before anything is written to the store.
"""
import json
import re
from typing import List, Optional

import requests
from flask import current_app
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from quizduel.errors import DependencyFailure

PROMPT_TEMPLATE = """
Generate {count} quiz questions along with the options and correct answer about "{topic}" with difficulty level "{difficulty}".
Every question must have exactly {option_count} options.
IMPORTANT: the answer must be STRICT JSON in the format below, returned DIRECTLY without any other text.
{{
    "questions": [
        {{
            "question": "Question text",
            "options": [
                {{"index": 0, "option": "Option 1"}},
                {{"index": 1, "option": "Option 2"}}
            ],
            "answer": 0
        }}
    ]
}}
"""

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")


class GeneratedOption(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    index: int
    label: str = Field(alias='option', min_length=1)


class GeneratedQuestion(BaseModel):
    question: str = Field(min_length=1)
    options: List[GeneratedOption]
    answer: int

    @model_validator(mode='after')
    def check_options(self):
        indices = [o.index for o in self.options]
        if indices != list(range(len(indices))):
            raise ValueError('options must be indexed 0..n-1 in order')
        if not 0 <= self.answer < len(self.options):
            raise ValueError('answer is not one of the option indices')
        return self


class GeneratedBatch(BaseModel):
    questions: List[GeneratedQuestion]


def extract_json(text: str) -> dict:
    """Pull a JSON object out of model output, tolerating markdown fences and chatter."""
    fenced = _FENCE_RE.search(text)
    cleaned = fenced.group(1).strip() if fenced else text.strip()
    try:
        return json.loads(cleaned)
    except ValueError:
        first = text.find('{')
        last = text.rfind('}')
        if first == -1 or last <= first:
            raise
        return json.loads(text[first:last + 1])


def parse_batch(text: str, count: int, option_count: int) -> List[GeneratedQuestion]:
    try:
        batch = GeneratedBatch.model_validate(extract_json(text))
    except (ValueError, ValidationError) as exc:
        raise DependencyFailure('Question generator returned a malformed batch', code='generator_malformed') from exc

    if len(batch.questions) != count:
        raise DependencyFailure(
            f'Question generator returned {len(batch.questions)} questions, expected {count}',
            code='generator_malformed',
        )
    for q in batch.questions:
        if len(q.options) != option_count:
            raise DependencyFailure(
                f'Question generator returned {len(q.options)} options, expected {option_count}',
                code='generator_malformed',
            )
    return batch.questions


class QuestionGenerator:
    def __init__(self, url: str, api_key: Optional[str] = None, model: str = 'gemini-2.5-flash-lite',
                 timeout: int = 30, option_count: int = 4):
        self.url = url
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.option_count = option_count

    @classmethod
    def from_config(cls, config) -> 'QuestionGenerator':
        return cls(
            url=config['QUESTION_GENERATOR_URL'],
            api_key=config.get('QUESTION_GENERATOR_API_KEY'),
            model=config.get('QUESTION_GENERATOR_MODEL', 'gemini-2.5-flash-lite'),
            timeout=int(config.get('QUESTION_GENERATOR_TIMEOUT_SEC', 30)),
            option_count=int(config.get('OPTION_COUNT', 4)),
        )

    def generate(self, topic: str, count: int, difficulty: str) -> List[GeneratedQuestion]:
        """Return exactly `count` validated questions or raise DependencyFailure."""
        prompt = PROMPT_TEMPLATE.format(
            count=count, topic=topic, difficulty=difficulty, option_count=self.option_count
        )
        text = self._complete(prompt)
        questions = parse_batch(text, count, self.option_count)
        current_app.logger.info(f"[generator] topic={topic!r} difficulty={difficulty} count={count} ok")
        return questions

    def _complete(self, prompt: str) -> str:
        url = self.url.format(model=self.model)
        params = {'key': self.api_key} if self.api_key else None
        body = {'contents': [{'parts': [{'text': prompt}]}]}
        try:
            response = requests.post(url, params=params, json=body, timeout=self.timeout)
        except requests.RequestException as exc:
            current_app.logger.error(f"[generator-fail] request error: {exc}")
            raise DependencyFailure('Question generator is unavailable', code='generator_unavailable') from exc

        if response.status_code != 200:
            current_app.logger.error(f"[generator-fail] status={response.status_code} body={response.text[:200]}")
            raise DependencyFailure('Question generator is unavailable', code='generator_unavailable')

        try:
            payload = response.json()
            return payload['candidates'][0]['content']['parts'][0]['text']
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise DependencyFailure('Question generator returned an unexpected response',
                                    code='generator_malformed') from exc


def get_question_generator() -> QuestionGenerator:
    return current_app.extensions['question_generator']
