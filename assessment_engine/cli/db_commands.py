"""
Database CLI commands: init
"""
import asyncio


class DbCommand:
    """Database CLI command handler."""

    def __init__(self, dry_run: bool = False, engine=None):
        self.dry_run = dry_run
        self.engine = engine

    def execute(self, args) -> int:
        """Execute database command."""
        if args.db_action == "init":
            return self._init(args)
        print("Error: Unknown database action")
        return 1

    def _init(self, args) -> int:
        """Create any missing tables."""
        print("=== Database Init ===")

        if self.dry_run:
            print("[DRY RUN] Would create missing tables")
            return 0

        try:
            asyncio.run(self._async_init())
            print("Tables ready")
            return 0
        except Exception as e:
            print(f"Error: {e}")
            return 1

    async def _async_init(self) -> None:
        from assessment_engine.database import init_db, engine

        bind = self.engine or engine
        try:
            await init_db(bind)
        finally:
            await bind.dispose()
