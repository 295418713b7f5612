"""Toxicity screening through Google's Perspective API.

Runs synchronously while a comment is being posted. Moderation fails open:
a missing key, a network error or an unreadable reply all mean "not NSFW".
"""

import logging

import requests

logger = logging.getLogger(__name__)

PERSPECTIVE_URL = 'https://commentanalyzer.googleapis.com/v1alpha1/comments:analyze'

# Any of these above the threshold marks a comment NSFW
NSFW_ATTRIBUTES = (
    'TOXICITY',
    'SEVERE_TOXICITY',
    'SEXUALLY_EXPLICIT',
    'INSULT',
    'PROFANITY',
)


def exceeds_threshold(scores: dict, threshold: float = 0.7) -> bool:
    """True if any NSFW attribute score is strictly above ``threshold``."""
    return any(scores.get(attr, 0.0) > threshold for attr in NSFW_ATTRIBUTES)


def _summary_scores(result: dict) -> dict:
    attribute_scores = result.get('attributeScores') or {}
    scores = {}
    for attr in NSFW_ATTRIBUTES:
        value = (
            (attribute_scores.get(attr) or {})
            .get('summaryScore', {})
            .get('value')
        )
        scores[attr] = float(value) if isinstance(value, (int, float)) else 0.0
    return scores


class ToxicityScorer:
    def __init__(self, api_key: str = '', threshold: float = 0.7, timeout: int = 5):
        self.api_key = api_key
        self.threshold = threshold
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def score(self, text: str) -> dict | None:
        """Return attribute -> score, or None when scoring is unavailable."""
        if not self.enabled:
            return None
        body = {
            'comment': {'text': text or ''},
            'requestedAttributes': {attr: {} for attr in NSFW_ATTRIBUTES},
            'doNotStore': True,
        }
        try:
            resp = requests.post(
                PERSPECTIVE_URL,
                params={'key': self.api_key},
                json=body,
                timeout=self.timeout,
            )
            resp.raise_for_status()
            scores = _summary_scores(resp.json())
        except (requests.RequestException, ValueError, AttributeError) as e:
            logger.warning('Perspective API unavailable, treating comment as safe: %s', e)
            return None
        logger.debug('Perspective scores: %s', scores)
        return scores

    def is_nsfw(self, text: str) -> bool:
        scores = self.score(text)
        if scores is None:
            return False
        return exceeds_threshold(scores, self.threshold)
