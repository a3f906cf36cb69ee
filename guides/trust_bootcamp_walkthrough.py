"""Walk one user through the trust boot camp workflow."""

import asyncio

from trustflow import GiftCodeService, Session, StaticAuthProvider, WorkflowEngine, get_repository
from trustflow.contracts import ViewKind


async def main():
    """Redeem a gift code, fill in the first steps and skip the rest."""
    repository = get_repository()
    session = Session.from_provider(StaticAuthProvider("user-123"))

    # Grant access
    gift_codes = GiftCodeService(repository)
    await gift_codes.create("WELCOME-2024", "trust-bootcamp", created_by="admin")
    await gift_codes.redeem("WELCOME-2024", "trust-bootcamp", session.user_id)

    engine = WorkflowEngine.from_config(
        "trust-bootcamp",
        session,
        repository=repository,
        on_complete=lambda record: print(f"🎉 {record.workflow_id} complete"),
        on_autosave=lambda key, payload: print(f"💾 Saved {key}"),
    )
    view = await engine.load()
    print(f"📋 Starting at step {view.position}/{view.total_steps}: {view.step.display_name}")

    await engine.render().confirm()
    await engine.render().submit({"accepted": True, "signature": "Ada Lovelace"})

    # Partial edits are autosaved after the debounce delay
    await engine.update_step_data("identity", {"full_name": "Ada Lovelace"})
    await engine.autosave.flush()

    await engine.render().submit(
        {
            "date_of_birth": "1815-12-10",
            "address": "12 St James's Square",
            "city": "London",
            "state": "LDN",
            "zip_code": "SW1Y",
        }
    )
    await engine.render().submit({"trust_base_name": "Analytical Engine"})
    await engine.render().submit({"is_ordained": True, "uploaded_files": ["ordination.pdf"]})

    while engine.view().kind == ViewKind.UNIMPLEMENTED:
        screen = engine.render()
        print(f"⏭️  {screen.message}")
        await screen.skip()

    summary = engine.summary()
    print(f"✅ {summary.completed_count}/{summary.total_steps} steps ({summary.percent_complete}%)")
    await engine.close()


if __name__ == "__main__":
    asyncio.run(main())
