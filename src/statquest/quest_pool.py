from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any

import yaml

from statquest.models import BasicQuest, QuestRewards
from statquest.stats import normalize_stat_key

logger = logging.getLogger(__name__)

# (title, description, difficulty, category, minutes to accept, xp, stat rewards)
_DEFAULT_TEMPLATES: list[tuple[str, str, str, str, int, int, dict[str, int]]] = [
    ("Take a 30-minute walk", "Go for a refreshing 30-minute walk outside.", "easy", "physical", 60, 50, {"physical": 2, "mental": 1}),
    ("Do 20 Push-ups", "Complete 20 push-ups (can be done in sets).", "medium", "physical", 30, 75, {"physical": 3}),
    ("Morning Stretching Routine", "Complete a 15-minute morning stretching routine.", "easy", "physical", 120, 40, {"physical": 2, "spiritual": 1}),
    ("Run 2km", "Go for a 2km run at your own pace.", "medium", "physical", 90, 85, {"physical": 4, "mental": 2}),
    ("Yoga Session", "Complete a 20-minute yoga session.", "medium", "physical", 60, 65, {"physical": 3, "spiritual": 2}),
    ("Meditation Session", "Complete a 10-minute meditation session.", "easy", "mental", 60, 45, {"mental": 2, "spiritual": 2}),
    ("Solve a Puzzle", "Complete a crossword, sudoku, or similar puzzle.", "medium", "mental", 45, 60, {"mental": 3, "knowledge": 1}),
    ("Memory Exercise", "Practice a memory exercise for 15 minutes.", "medium", "mental", 60, 55, {"mental": 3, "knowledge": 2}),
    ("Focus Time", "Spend 25 minutes in focused work without distractions.", "hard", "mental", 30, 80, {"mental": 4, "knowledge": 2}),
    ("Call a Friend", "Call a friend or family member you haven't spoken to in a while.", "easy", "social", 180, 55, {"social": 3, "mental": 1}),
    ("Group Activity", "Participate in a group activity or meeting.", "medium", "social", 120, 80, {"social": 4}),
    ("Help Someone", "Offer help to someone in need.", "medium", "social", 180, 70, {"social": 3, "spiritual": 2}),
    ("Team Project", "Work on a project with others.", "hard", "social", 240, 100, {"social": 5, "knowledge": 2}),
    ("Draw Something", "Spend 20 minutes drawing or sketching anything.", "easy", "creative", 90, 45, {"creativity": 3}),
    ("Write a Short Story", "Write a short story or creative piece (minimum 500 words).", "hard", "creative", 120, 100, {"creativity": 4, "knowledge": 2}),
    ("Photography Challenge", "Take 5 creative photos of everyday objects.", "medium", "creative", 120, 65, {"creativity": 3, "knowledge": 1}),
    ("Music Creation", "Create a simple melody or rhythm.", "medium", "creative", 90, 70, {"creativity": 3, "mental": 2}),
    ("Read an Article", "Read an educational article about a topic you're interested in.", "easy", "knowledge", 60, 40, {"knowledge": 2, "mental": 1}),
    ("Learn Something New", "Watch an educational video or tutorial about a new topic.", "medium", "knowledge", 90, 70, {"knowledge": 3, "creativity": 1}),
    ("Research Project", "Research a topic you're curious about for 30 minutes.", "hard", "knowledge", 120, 90, {"knowledge": 4, "mental": 2}),
    ("Language Practice", "Practice a language you're learning for 20 minutes.", "medium", "knowledge", 60, 60, {"knowledge": 3, "social": 1}),
    ("Gratitude Journal", "Write down 3 things you're grateful for today.", "easy", "spiritual", 60, 45, {"spiritual": 2, "mental": 1}),
    ("Nature Walk", "Take a mindful walk in nature for 20 minutes.", "easy", "spiritual", 120, 50, {"spiritual": 2, "physical": 1}),
    ("Mindful Eating", "Practice mindful eating during one meal.", "medium", "spiritual", 90, 55, {"spiritual": 3, "physical": 1}),
    ("Reflection Time", "Spend 15 minutes in quiet reflection.", "medium", "spiritual", 60, 50, {"spiritual": 3, "mental": 2}),
    ("Cook a New Recipe", "Try cooking a recipe you've never made before.", "medium", "creative", 180, 75, {"creativity": 3, "knowledge": 2}),
    ("Dance Session", "Dance to your favorite music for 15 minutes.", "easy", "physical", 30, 45, {"physical": 2, "mental": 1}),
    ("Plant Care", "Take care of your plants or start a new one.", "easy", "spiritual", 60, 40, {"spiritual": 2, "knowledge": 1}),
    ("Digital Detox", "Spend 1 hour without using any digital devices.", "hard", "mental", 60, 85, {"mental": 3, "spiritual": 2}),
]

BASIC_DIFFICULTIES = ("easy", "medium", "hard")


def slugify(title: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-")


def default_quest_pool() -> list[BasicQuest]:
    return [
        BasicQuest(
            id=slugify(title),
            title=title,
            description=description,
            difficulty=difficulty,
            category=category,
            time_to_accept_minutes=accept_minutes,
            time_to_complete_hours=24,
            rewards=QuestRewards(experience=xp, stats=dict(stats)),
        )
        for title, description, difficulty, category, accept_minutes, xp, stats in _DEFAULT_TEMPLATES
    ]


def _template_from_yaml(item: dict[str, Any]) -> BasicQuest | None:
    title = str(item.get("title", "")).strip()
    if not title:
        return None
    difficulty = str(item.get("difficulty", "easy")).strip().lower()
    if difficulty not in BASIC_DIFFICULTIES:
        difficulty = "easy"
    rewards_raw = item.get("rewards") if isinstance(item.get("rewards"), dict) else {}
    stats_raw = rewards_raw.get("stats") if isinstance(rewards_raw.get("stats"), dict) else {}
    stats: dict[str, int] = {}
    for key, value in stats_raw.items():
        stat_key = normalize_stat_key(key)
        if stat_key is None:
            continue
        try:
            stats[stat_key] = int(value)
        except (TypeError, ValueError):
            continue
    try:
        experience = int(rewards_raw.get("experience", 0))
        accept_minutes = int(item.get("time_to_accept_minutes", 120))
        complete_hours = int(item.get("time_to_complete_hours", 24))
    except (TypeError, ValueError):
        return None
    return BasicQuest(
        id=str(item.get("id") or slugify(title)),
        title=title,
        description=str(item.get("description", "")).strip(),
        difficulty=difficulty,
        category=str(item.get("category", "physical")).strip().lower(),
        time_to_accept_minutes=accept_minutes,
        time_to_complete_hours=complete_hours,
        rewards=QuestRewards(experience=max(0, experience), stats=stats),
    )


def load_quest_pool(path: Path | None) -> list[BasicQuest]:
    if path is None or not path.exists():
        return default_quest_pool()

    raw = yaml.safe_load(path.read_text()) or {}
    items = raw.get("quests", []) if isinstance(raw, dict) else []
    pool: list[BasicQuest] = []
    seen_titles: set[str] = set()
    if isinstance(items, list):
        for item in items:
            if not isinstance(item, dict):
                continue
            template = _template_from_yaml(item)
            if template is None or template.title in seen_titles:
                continue
            seen_titles.add(template.title)
            pool.append(template)

    if not pool:
        logger.warning("quest pool %s has no usable templates, using built-in pool", path)
        return default_quest_pool()
    return pool
