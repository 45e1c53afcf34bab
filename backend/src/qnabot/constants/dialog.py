"""Conversation wording and limits.

These strings are what the user sees at each step of the conversation. The
transport layer decides how to render them (cards, buttons, plain text), but
the wording itself belongs to the dialog.
"""

# =============================================================================
# Prompts
# =============================================================================

WELCOME_MESSAGE = (
    "Welcome to QnA bot, you can ask questions and I'll look up relevant information for you."
)
REWORD_MESSAGE = (
    "Sorry we couldn't find any answers to that one, can you reword the question and try again?"
)
SELECT_CONTEXT_MESSAGE = "We've found a few options, which is the best fit?"
NOT_FOUND_WITH_CONTEXT_MESSAGE = (
    "I'm sorry we couldn't find a good answer to that one in @{name}. "
    "We can answer these, are any of these useful?"
)
SUGGESTIONS_MESSAGE = (
    "We've found some answers but we're not sure if they're a good fit, you may have "
    "changed topics. We included what you can ask in @{name} as well as some alternatives"
)
SUGGESTIONS_MESSAGE_NO_CONTEXT = (
    "We've found some answers but we're not sure if they're a good fit. "
    "Here are some alternatives"
)
APOLOGY_MESSAGE = "Sorry I had a problem finding an answer to that question"
EMPTY_MESSAGE_PROMPT = "Please type a question and I'll look it up for you."

# =============================================================================
# Choice Options and Affordances
# =============================================================================
# Escape options are appended after the real options, so any index past the
# real options means "none of these".

NONE_OF_THE_ABOVE = "None of the above"
NONE_OF_THESE_USEFUL = "None of these are useful"
NOT_RIGHT_ANSWER_LABEL = "Not the right answer? Click here"
WHAT_CAN_I_ASK_LABEL = "What can I ask?"
NO_ANSWERS_IN_CONTEXT_LABEL = "No answers found for this area"
ASK_THIS_LABEL = "Ask this"

# =============================================================================
# State Machine Limits
# =============================================================================
# A single user turn can pass through several states before a prompt is
# emitted (e.g. SelectContext -> FollowupQuestion -> LowConfidence). The
# longest legitimate chain is well under this bound.

MAX_TRANSITIONS_PER_TURN = 12
