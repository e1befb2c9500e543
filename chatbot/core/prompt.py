CHAT_PROMPT = "Answer in maximum 150 words, but concise when you can:\n\n{message}"

SUMMARY_PROMPT = (
    "Provide a short, concise title (MAX SEVEN WORDS, NO BOLDING) "
    "for the following conversation:\n\n{conversation}"
)

# Only the oldest part of a conversation is sent for titling.
SUMMARY_INPUT_LIMIT = 1000
