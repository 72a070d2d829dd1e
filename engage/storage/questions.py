import json
from typing import List

import aiosqlite


class QuestionRepo:
    """Quiz questions attached to a campaign."""

    def __init__(self, db: aiosqlite.Connection):
        self._db = db

    async def add_many(self, campaign_id: int, questions: List[dict]):
        rows = [
            (
                campaign_id,
                q["question_id"],
                position,
                q["input_type"],
                json.dumps(q.get("options") or []),
                q["correct_answer"],
                json.dumps(q.get("synonyms") or []),
            )
            for position, q in enumerate(questions)
        ]
        await self._db.executemany(
            "INSERT INTO campaign_questions (campaign_id, question_id, position, input_type, "
            "options_json, correct_answer, synonyms_json) VALUES (?, ?, ?, ?, ?, ?, ?)",
            rows,
        )

    async def list_for_campaign(self, campaign_id: int) -> List[dict]:
        results = []
        async with self._db.execute(
            "SELECT question_id, position, input_type, options_json, correct_answer, synonyms_json "
            "FROM campaign_questions WHERE campaign_id = ? ORDER BY position",
            (campaign_id,),
        ) as cursor:
            async for row in cursor:
                results.append({
                    "question_id": row[0],
                    "position": row[1],
                    "input_type": row[2],
                    "options": json.loads(row[3]),
                    "correct_answer": row[4],
                    "synonyms": json.loads(row[5]),
                })
        return results
