"""Curriculum seed: three levels, three modules each, five content items per module.

Every module also gets an empty quiz placeholder; its questions are generated
on first fetch. Running the seed twice changes nothing.
"""
from __future__ import annotations

import logging
from typing import Dict, List, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from .models import ContentItem, Level, Module, Quiz
from .quiz_assembly import PLACEHOLDER_DESCRIPTION


logger = logging.getLogger(__name__)

LEVELS: List[Tuple[int, str, str]] = [
    (1, "Beginner", "Introduction to basic Japanese vocabulary and kanji"),
    (2, "Intermediate", "Expanded vocabulary and grammar patterns"),
    (3, "Advanced", "Complex reading comprehension and interpretation"),
]

MODULES: Dict[int, List[Tuple[str, str]]] = {
    1: [
        ("Basic Vocabulary", "Learn fundamental Japanese words"),
        ("Corresponding Kanji", "Learn kanji forms of basic vocabulary"),
        ("Simple Sentence Formation", "Form basic Japanese sentences"),
    ],
    2: [
        ("Expanded Vocabulary", "Learn more complex vocabulary"),
        ("Grammar Patterns", "Master essential grammar patterns"),
        ("Sentence Building", "Build more complex sentences"),
    ],
    3: [
        ("Contextual Reading", "Read and understand context"),
        ("Complex Sentence Interpretation", "Interpret complex sentence structures"),
        ("Meaning & Inference", "Understand implied meanings and make inferences"),
    ],
}

# (level order, module order) -> [(title, content)]
CONTENT: Dict[Tuple[int, int], List[Tuple[str, str]]] = {
    (1, 1): [
        ("いぬ", "いぬ (inu) - dog"),
        ("ねこ", "ねこ (neko) - cat"),
        ("みず", "みず (mizu) - water"),
        ("たべる", "たべる (taberu) - to eat"),
        ("のむ", "のむ (nomu) - to drink"),
    ],
    (1, 2): [
        ("犬", "犬 (inu) - dog (kanji form)"),
        ("猫", "猫 (neko) - cat (kanji form)"),
        ("水", "水 (mizu) - water (kanji form)"),
        ("食べる", "食べる (taberu) - to eat (kanji form)"),
        ("飲む", "飲む (nomu) - to drink (kanji form)"),
    ],
    (1, 3): [
        ("いぬをみる", "いぬをみる (inu wo miru) - I see a dog"),
        ("ねこがたべる", "ねこがたべる (neko ga taberu) - The cat eats"),
        ("みずをのむ", "みずをのむ (mizu wo nomu) - I drink water"),
        ("たべものをたべる", "たべものをたべる (tabemono wo taberu) - I eat food"),
        ("いぬとねこ", "いぬとねこ (inu to neko) - dog and cat"),
    ],
    (2, 1): [
        ("学校", "学校 (gakkou) - school"),
        ("学生", "学生 (gakusei) - student"),
        ("勉強", "勉強 (benkyou) - study"),
        ("友達", "友達 (tomodachi) - friend"),
        ("家族", "家族 (kazoku) - family"),
    ],
    (2, 2): [
        ("～ています", "～ています (te imasu) - present continuous form"),
        ("～ました", "～ました (mashita) - past tense polite form"),
        ("～が", "～が (ga) - subject particle"),
        ("～を", "～を (wo) - object particle"),
        ("～に", "～に (ni) - direction/time particle"),
    ],
    (2, 3): [
        ("学校に行きます", "学校に行きます (gakkou ni ikimasu) - I go to school"),
        ("勉強しています", "勉強しています (benkyou shite imasu) - I am studying"),
        ("友達と話しました", "友達と話しました (tomodachi to hanashimashita) - I talked with a friend"),
        ("家族と食べました", "家族と食べました (kazoku to tabemashita) - I ate with my family"),
        ("学生が読んでいます", "学生が読んでいます (gakusei ga yonde imasu) - The student is reading"),
    ],
    (3, 1): [
        ("短文読解 1", "昨日、公園で友達とサッカーをしました。とても楽しかったです。"),
        ("短文読解 2", "今日は雨が降っています。傘を持って出かけました。"),
        ("短文読解 3", "図書館で本を借りました。来週までに返さなければなりません。"),
        ("短文読解 4", "新しいレストランに行きました。料理がとても美味しかったです。"),
        ("短文読解 5", "週末に映画を見に行く予定です。友達と一緒に行きます。"),
    ],
    (3, 2): [
        ("複文 1", "もし時間があれば、博物館に行きたいと思います。"),
        ("複文 2", "彼が来るまで、ここで待っていてください。"),
        ("複文 3", "勉強すればするほど、日本語が上手になります。"),
        ("複文 4", "天気が良ければ、ピクニックに行くつもりです。"),
        ("複文 5", "この本を読んだ後で、感想を聞かせてください。"),
    ],
    (3, 3): [
        ("推論問題 1", "彼は毎日図書館に通っている。推論：彼は勉強熱心だ。"),
        ("推論問題 2", "このレストランはいつも満席だ。推論：料理が人気だ。"),
        ("推論問題 3", "彼女は日本語を話せるが、まだ勉強している。推論：上達したいと思っている。"),
        ("推論問題 4", "この本は難しいが、面白い。推論：読む価値がある。"),
        ("推論問題 5", "雨が降っているのに、彼は出かけた。推論：重要な用事がある。"),
    ],
}


def _upsert_level(db: Session, order: int, title: str, description: str) -> Level:
    level = db.scalars(select(Level).where(Level.order == order)).first()
    if level is None:
        level = Level(order=order, title=title, description=description)
        db.add(level)
        db.flush()
    return level


def _upsert_module(db: Session, level: Level, order: int, title: str, description: str) -> Module:
    module = db.scalars(select(Module).where(Module.level_id == level.id, Module.order == order)).first()
    if module is None:
        module = Module(level_id=level.id, order=order, title=title, description=description)
        db.add(module)
        db.flush()
    return module


def _upsert_content(db: Session, module: Module, order: int, title: str, content: str) -> None:
    item = db.scalars(
        select(ContentItem).where(ContentItem.module_id == module.id, ContentItem.order == order)
    ).first()
    if item is None:
        db.add(ContentItem(module_id=module.id, order=order, title=title, content=content, type="text"))
    else:
        item.title = title
        item.content = content
        item.type = "text"


def _upsert_quiz(db: Session, module: Module) -> None:
    title = f"{module.title} Quiz"
    quiz = db.scalars(select(Quiz).where(Quiz.module_id == module.id)).first()
    if quiz is None:
        db.add(Quiz(module_id=module.id, title=title, description=PLACEHOLDER_DESCRIPTION))
    else:
        quiz.title = title
        quiz.description = PLACEHOLDER_DESCRIPTION


def seed_curriculum(db: Session) -> Dict[str, int]:
    counts = {"levels": 0, "modules": 0, "content_items": 0, "quizzes": 0}
    for level_order, level_title, level_description in LEVELS:
        logger.info("Seeding level %s", level_title)
        level = _upsert_level(db, level_order, level_title, level_description)
        counts["levels"] += 1
        for module_order, (module_title, module_description) in enumerate(MODULES[level_order], start=1):
            module = _upsert_module(db, level, module_order, module_title, module_description)
            counts["modules"] += 1
            for item_order, (title, content) in enumerate(CONTENT[(level_order, module_order)], start=1):
                _upsert_content(db, module, item_order, title, content)
                counts["content_items"] += 1
            _upsert_quiz(db, module)
            counts["quizzes"] += 1
    db.commit()
    logger.info("Seed completed: %s", counts)
    return counts
