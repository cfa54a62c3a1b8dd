"""
Question bank CLI commands: create
"""
import asyncio
import json
from pathlib import Path

from pydantic import ValidationError


class PaperCommand:
    """Question paper CLI command handler."""

    def __init__(self, dry_run: bool = False, session_factory=None):
        self.dry_run = dry_run
        self.session_factory = session_factory

    def execute(self, args) -> int:
        """Execute paper command."""
        if args.paper_action == "create":
            return self._create(args)
        print("Error: Unknown paper action")
        return 1

    def _create(self, args) -> int:
        """Load a paper definition file into the question bank."""
        from assessment_engine.schemas.assessment import PaperDefinition

        path = Path(args.file)
        if not path.exists():
            print(f"Error: File not found: {path}")
            return 1

        try:
            definition = PaperDefinition.model_validate(json.loads(path.read_text()))
        except (json.JSONDecodeError, ValidationError) as e:
            print(f"Error: Invalid paper definition: {e}")
            return 1

        print(f"=== Create Paper: {definition.title} ===")
        print(f"Questions: {len(definition.questions)}")
        print(f"Time limit: {definition.time_limit_minutes or 'untimed'} min")

        if self.dry_run:
            print("[DRY RUN] Would create paper")
            return 0

        try:
            paper_id = asyncio.run(self._async_create(definition))
            print(f"Created paper {paper_id}")
            return 0
        except Exception as e:
            print(f"Error: {e}")
            return 1

    async def _async_create(self, definition) -> int:
        from assessment_engine.database import AsyncSessionLocal, init_db, close_db
        from assessment_engine.services.question_bank import create_paper

        if self.session_factory is not None:
            async with self.session_factory() as db:
                paper = await create_paper(db, definition)
                return paper.id

        try:
            await init_db()
            async with AsyncSessionLocal() as db:
                paper = await create_paper(db, definition)
                return paper.id
        finally:
            await close_db()
