"""LLM spoiler classification through OpenRouter's chat completions API.

Called off the request path once a comment is stored. Every failure
(network, HTTP status, malformed or incomplete JSON) yields None and the
comment keeps its provisional spoiler state.
"""

import json
import logging
import re
from dataclasses import dataclass

import requests

logger = logging.getLogger(__name__)

OPENROUTER_URL = 'https://openrouter.ai/api/v1/chat/completions'

SYSTEM_PROMPT = (
    'You are a spoiler detection assistant. '
    'Always return valid JSON only, no additional text.'
)

_JSON_OBJECT_RE = re.compile(r'\{.*\}', re.DOTALL)


@dataclass(frozen=True)
class SpoilerVerdict:
    is_spoiler: bool
    confidence: float


def build_prompt(text, book_title=None, page=None, page_range=None) -> str:
    if page_range:
        page_info = f'pages {page_range}'
    elif page:
        page_info = f'page {page}'
    else:
        page_info = 'unknown page'
    book_info = f' for the book "{book_title}"' if book_title else ''

    return (
        f'You are analyzing a comment{book_info} at {page_info}. '
        'Determine if this comment reveals future plot information beyond '
        'the referenced page range.\n\n'
        f'Comment: "{text}"\n\n'
        'Classification criteria:\n'
        '- A spoiler is any information that reveals events, character '
        'outcomes, or plot developments occurring after the referenced page range\n'
        '- General opinions, emotions, or themes are NOT spoilers\n'
        '- Only classify as spoiler if it clearly reveals future plot points\n\n'
        'Return ONLY valid JSON in this exact format:\n'
        '{\n  "isSpoiler": true or false,\n  "confidence": 0.0 to 1.0\n}'
    )


def parse_verdict(content: str) -> SpoilerVerdict | None:
    """Pull the ``{isSpoiler, confidence}`` object out of a model reply.

    Models sometimes wrap the JSON in prose, so the outermost braces are
    extracted first. Confidence is clamped into [0, 1].
    """
    if not content:
        return None
    match = _JSON_OBJECT_RE.search(content)
    if not match:
        logger.warning('Spoiler classifier reply has no JSON object: %r', content[:200])
        return None
    try:
        data = json.loads(match.group(0))
    except ValueError:
        logger.warning('Spoiler classifier reply is not valid JSON: %r', content[:200])
        return None
    if not isinstance(data, dict):
        return None

    is_spoiler = data.get('isSpoiler')
    confidence = data.get('confidence')
    # bool is an int subclass, so it has to be excluded explicitly
    if not isinstance(is_spoiler, bool) or isinstance(confidence, bool) \
            or not isinstance(confidence, (int, float)):
        logger.warning('Spoiler classifier returned invalid structure: %r', data)
        return None
    if confidence != confidence:  # NaN
        return None

    return SpoilerVerdict(
        is_spoiler=is_spoiler,
        confidence=max(0.0, min(1.0, float(confidence))),
    )


class SpoilerClassifier:
    def __init__(self, api_key: str = '', model: str = 'openai/gpt-3.5-turbo', timeout: int = 20):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def classify(self, text, book_title=None, page=None, page_range=None) -> SpoilerVerdict | None:
        if not self.enabled:
            logger.debug('OPENROUTER_API_KEY not set, skipping spoiler classification')
            return None

        payload = {
            'model': self.model,
            'messages': [
                {'role': 'system', 'content': SYSTEM_PROMPT},
                {'role': 'user', 'content': build_prompt(text, book_title, page, page_range)},
            ],
            'max_tokens': 150,
            'temperature': 0.3,
        }
        try:
            resp = requests.post(
                OPENROUTER_URL,
                headers={'Authorization': f'Bearer {self.api_key}'},
                json=payload,
                timeout=self.timeout,
            )
            resp.raise_for_status()
            data = resp.json()
            content = data['choices'][0]['message']['content']
        except requests.RequestException as e:
            logger.warning('Spoiler classifier request failed: %s', e)
            return None
        except (ValueError, KeyError, IndexError, TypeError) as e:
            logger.warning('Spoiler classifier returned an unexpected payload: %s', e)
            return None

        if not isinstance(content, str):
            return None
        return parse_verdict(content.strip())
