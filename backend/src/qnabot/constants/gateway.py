"""Upstream service protocol constants.

The search index and the QnA scoring service are reached over HTTPS. These
values describe their wire protocol, not tunables; thresholds live in
config.ini (see qnabot.config).
"""

# =============================================================================
# Search Index
# =============================================================================

SEARCH_API_VERSION = "2017-11-11"
SEARCH_SCORE_FIELD = "@search.score"
SEARCH_KEY_HEADER = "api-key"

# =============================================================================
# QnA Scoring Service
# =============================================================================
# The QnA service reports scores on a 0-100 scale; the dialog works in 0-1.

QNAMAKER_KEY_HEADER = "Ocp-Apim-Subscription-Key"
QNAMAKER_SCORE_SCALE = 100.0
QNAMAKER_NO_MATCH_ANSWER = "No good match found in the KB"

# =============================================================================
# Spell Check
# =============================================================================

SPELLCHECK_KEY_HEADER = "Ocp-Apim-Subscription-Key"
SPELLCHECK_TIMEOUT_SECONDS = 5.0

# =============================================================================
# HTTP
# =============================================================================

HTTP_TIMEOUT_SECONDS = 10.0
