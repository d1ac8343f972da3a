"""
Humanizer prompt fragments -- appended to the writing passes so generated
posts read like a person wrote them, not a marketing bot.

Two variants:
- POST_HUMANIZER: draft and single-pass writing (most detailed)
- EDIT_HUMANIZER: enhancement edits (lighter, must not change meaning)

Usage:
    from postgen.prompts.humanizer import POST_HUMANIZER
    system_prompt = f"{base_prompt}\n\n{POST_HUMANIZER}"
"""

# ── Words that make a social post read machine-written ──────────────────────
BANNED_WORDS = (
    "delve, elevate, embark, unlock, unleash, game-changer, revolutionize, "
    "seamless, cutting-edge, tapestry, testament, realm, journey, "
    "in today's fast-paced world, look no further, whether you're"
)


# ── Post humanizer (drafting) ───────────────────────────────────────────────
POST_HUMANIZER = f"""SOUND HUMAN (critical):
- BANNED WORDS (never use, in any language): {BANNED_WORDS}
- No exaggerated claims or superlatives the brand cannot back up
- Vary sentence length - mix short lines with longer ones
- Prefer concrete details (time, place, sensory detail) over adjectives
- No hashtags or emojis inside the body unless the brand voice uses them
- Write like the shop owner talking to a regular customer"""


# ── Edit humanizer (enhancement) ────────────────────────────────────────────
EDIT_HUMANIZER = f"""KEEP IT HUMAN:
- BANNED WORDS: {BANNED_WORDS}
- Fix stiff or repetitive phrasing, keep the author's voice
- Never add claims, numbers or promises that were not in the draft"""
