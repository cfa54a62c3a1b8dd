"""
Session CLI commands: sweep run-once, session finalize, result verify
"""
import asyncio
import json

from assessment_engine.errors import APIError


class _SessionBoundCommand:
    """Base for handlers that need a database session."""

    def __init__(self, dry_run: bool = False, session_factory=None):
        self.dry_run = dry_run
        self.session_factory = session_factory

    async def _with_db(self, operation):
        from assessment_engine.database import AsyncSessionLocal, close_db

        if self.session_factory is not None:
            async with self.session_factory() as db:
                return await operation(db)

        try:
            async with AsyncSessionLocal() as db:
                return await operation(db)
        finally:
            await close_db()


class SweepCommand(_SessionBoundCommand):
    """Deadline sweep CLI command handler."""

    def execute(self, args) -> int:
        if args.sweep_action == "run-once":
            return self._run_once(args)
        print("Error: Unknown sweep action")
        return 1

    def _run_once(self, args) -> int:
        """Finalize every expired in-progress session with TIMEOUT."""
        print("=== Expiry Sweep ===")

        try:
            count = asyncio.run(self._async_run_once())
        except Exception as e:
            print(f"Error: {e}")
            return 1

        if self.dry_run:
            print(f"[DRY RUN] Would finalize {count} expired session(s)")
        else:
            print(f"Finalized {count} expired session(s)")
        return 0

    async def _async_run_once(self) -> int:
        from assessment_engine.database import AsyncSessionLocal, close_db
        from assessment_engine.tasks.expiry_sweep import find_expired_session_ids, sweep_expired_sessions

        factory = self.session_factory or AsyncSessionLocal
        try:
            if self.dry_run:
                async with factory() as db:
                    return len(await find_expired_session_ids(db))
            return await sweep_expired_sessions(factory)
        finally:
            if self.session_factory is None:
                await close_db()


class SessionCommand(_SessionBoundCommand):
    """Session CLI command handler."""

    def execute(self, args) -> int:
        if args.session_action == "finalize":
            return self._finalize(args)
        print("Error: Unknown session action")
        return 1

    def _finalize(self, args) -> int:
        """Force-finalize one session with ADMIN_FORCE."""
        session_id = args.id
        print(f"=== Finalize Session {session_id} ===")

        if self.dry_run:
            print(f"[DRY RUN] Would finalize session {session_id} with {args.reason}")
            return 0

        try:
            result = asyncio.run(self._with_db(lambda db: self._async_finalize(db, session_id)))
        except APIError as e:
            print(f"Error: {e.code}: {e.message}")
            return 1
        except Exception as e:
            print(f"Error: {e}")
            return 1

        print(json.dumps(result, indent=2))
        return 0

    async def _async_finalize(self, db, session_id: int) -> dict:
        from assessment_engine.services.session_engine import force_finalize

        result = await force_finalize(db, session_id)
        return result.to_dict()


class ResultCommand(_SessionBoundCommand):
    """Result CLI command handler."""

    def execute(self, args) -> int:
        if args.result_action == "verify":
            return self._verify(args)
        print("Error: Unknown result action")
        return 1

    def _verify(self, args) -> int:
        """Recompute a result's hash and compare it with the stored one."""
        session_id = args.session_id
        print(f"=== Verify Result for Session {session_id} ===")

        try:
            report = asyncio.run(self._with_db(lambda db: self._async_verify(db, session_id)))
        except APIError as e:
            print(f"Error: {e.code}: {e.message}")
            return 1
        except Exception as e:
            print(f"Error: {e}")
            return 1

        print(f"Stored hash:   {report['stored_hash']}")
        print(f"Computed hash: {report['computed_hash']}")

        if report["valid"]:
            print("✓ Result integrity verified")
            return 0

        print("✗ Result hash mismatch")
        return 2

    async def _async_verify(self, db, session_id: int) -> dict:
        from assessment_engine.services.finalizer import verify_result_integrity

        return await verify_result_integrity(db, session_id)
