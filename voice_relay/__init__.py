"""
Voice Relay: Telegram voice/audio messages -> remote ASR -> transcript reply.

Request path:
    webhook -> dedup -> admission gate -> retrieval -> transcoder -> ASR -> reply

The admission gate allows one in-flight job per chat. Staging files are
released by the job that created them, with the janitor as a backstop.
"""
