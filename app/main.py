"""
Streamlit Dashboard for Shop Ledger

This is the screen the shopkeeper uses to move their product list onto
bills, check the result, and undo it if something looks wrong.

DESIGN PRINCIPLES:
1. One tab per workflow (Migration, Validation, Rollback)
2. Live progress while a run is going
3. Clear error messages in simple language
4. Destructive actions need two explicit confirmations
5. No hidden actions

The dashboard holds no run state of its own: it subscribes to each
flow's tracker and renders the RunState it is handed.
"""

import asyncio

import streamlit as st

from shopledger.models.migration import RunState, RunStatus
from shopledger.orchestrator import (
    MigrationFlow,
    RollbackFlow,
    ValidationFlow,
    create_app_components,
)


# Page configuration
st.set_page_config(
    page_title="Shop Ledger",
    page_icon="🧾",
    layout="wide",
    initial_sidebar_state="expanded",
)

# Custom CSS for better UX
st.markdown("""
<style>
    .stButton>button {
        width: 100%;
        margin-top: 10px;
    }
    .warning-box {
        padding: 20px;
        background-color: #fff3cd;
        border-radius: 10px;
        border-left: 5px solid #ffc107;
        margin: 10px 0;
    }
    .error-box {
        padding: 20px;
        background-color: #f8d7da;
        border-radius: 10px;
        border-left: 5px solid #dc3545;
        margin: 10px 0;
    }
</style>
""", unsafe_allow_html=True)


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@st.cache_resource
def get_components():
    """Get or create application components (cached)."""
    try:
        return create_app_components(use_storage=True)
    except Exception as e:
        st.error(f"Failed to initialize: {e}")
        return create_app_components(use_storage=False)


def run_with_progress(tracker, coro):
    """Run a flow coroutine while mirroring its tracker into a progress bar."""
    bar = st.progress(0, text="Starting...")

    def on_change(state: RunState) -> None:
        bar.progress(state.progress, text=state.current_step)

    unsubscribe = tracker.subscribe(on_change)
    try:
        return run_async(coro)
    finally:
        unsubscribe()


def render_run_state(state: RunState):
    """Show the outcome of the last run of a flow."""
    if state.status == RunStatus.FAILED:
        st.markdown(f"""
        <div class="error-box">
            <h4>❌ Run Failed</h4>
            <p>{state.error}</p>
        </div>
        """, unsafe_allow_html=True)
    elif state.status == RunStatus.COMPLETED and state.duration_seconds is not None:
        st.caption(f"{state.current_step} in {state.duration_seconds:.1f}s")


def main():
    """Main application entry point."""
    migration_flow, validation_flow, rollback_flow, _ = get_components()

    st.sidebar.title("🧾 Shop Ledger")
    st.sidebar.markdown("---")
    st.sidebar.markdown(
        """
        **How to use:**
        1. Run the migration once
        2. Check the validation report
        3. Fix what can be fixed automatically
        4. Roll back only if something went wrong
        """
    )

    migration_tab, validation_tab, rollback_tab = st.tabs(
        ["🚚 Migration", "🔍 Validation", "↩️ Rollback"]
    )

    with migration_tab:
        render_migration_tab(migration_flow)
    with validation_tab:
        render_validation_tab(validation_flow)
    with rollback_tab:
        render_rollback_tab(rollback_flow)


def render_migration_tab(flow: MigrationFlow):
    """Render the migration tab."""
    st.title("🚚 Migrate Products to Bills")
    st.markdown(
        "Groups your products by bill number and creates one bill per group. "
        "Products without a bill number each get their own bill."
    )

    if st.button("▶️ Start Migration", type="primary", disabled=flow.tracker.is_running):
        try:
            run_with_progress(flow.tracker, flow.run())
        except Exception as e:
            st.error(f"Migration failed: {str(e)}")

    state = flow.state
    render_run_state(state)

    if state.status != RunStatus.COMPLETED or state.result is None:
        return

    result = state.result
    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Products Processed", result.total_products_processed)
    col2.metric("Bills Created", result.total_bills_created)
    col3.metric("Products Updated", result.total_products_updated)
    col4.metric("Errors", result.total_errors)

    if result.needs_review:
        st.warning("⚠️ Some items failed. Please review the errors below.")
    if result.data_integrity_valid:
        st.success("✅ Data integrity check passed.")
    else:
        st.warning("⚠️ Data integrity issues found. See the Validation tab.")
        for issue in result.validation_issues:
            st.markdown(f"- **{issue.severity.value.upper()}**: {issue.message}")

    if result.details:
        with st.expander("📋 Error Details"):
            details = result.details
            for error in details.bill_creation.errors:
                st.markdown(f"- Bill `{error.group_key}` ({error.product_count} products): {error.error}")
            for error in details.product_update.errors + details.orphan_handling.errors:
                st.markdown(f"- Product `{error.product_id}`: {error.error}")


def render_validation_tab(flow: ValidationFlow):
    """Render the validation tab."""
    st.title("🔍 Data Integrity")

    col1, col2 = st.columns(2)
    with col1:
        if st.button("🔍 Validate Data", type="primary", disabled=flow.tracker.is_running):
            try:
                run_with_progress(flow.tracker, flow.validate())
            except Exception as e:
                st.error(f"Validation failed: {str(e)}")

    report = flow.last_report
    with col2:
        can_fix = report is not None and bool(report.fixable_issues)
        if st.button("🛠️ Fix Issues Automatically", disabled=not can_fix):
            try:
                remediation = run_with_progress(flow.tracker, flow.fix_issues())
                if remediation.success:
                    st.success("✅ All issues fixed.")
                else:
                    st.warning(
                        f"Fixed {len(remediation.fixed_issues)} issue(s); "
                        f"{len(remediation.unfixed_issues)} need manual attention."
                    )
                for error in remediation.errors:
                    st.markdown(f"- `{error.entity_id}`: {error.error}")
            except Exception as e:
                st.error(f"Fixing issues failed: {str(e)}")
            report = flow.last_report

    render_run_state(flow.state)

    if report is None:
        st.info("Run a validation to see the state of your data.")
        return

    summary = report.summary
    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Products", summary.total_products)
    col2.metric("Bills", summary.total_bills)
    col3.metric("Linked Products", summary.products_with_bill_id)
    col4.metric("Unlinked Products", summary.products_without_bill_id)

    st.markdown("---")
    st.text(flow.summarize(report))


def render_rollback_tab(flow: RollbackFlow):
    """Render the rollback tab."""
    st.title("↩️ Roll Back Migration")
    st.markdown(
        "Removes every bill and unlinks every product. "
        "Bill numbers on products are kept so the migration can be run again."
    )

    if "rollback_step" not in st.session_state:
        st.session_state.rollback_step = "idle"  # idle, previewing, confirming

    if not run_async(flow.check_availability()):
        st.info("Nothing to roll back: no bills exist yet.")
        st.session_state.rollback_step = "idle"
        render_run_state(flow.state)
        return

    if st.session_state.rollback_step == "idle":
        if st.button("👀 Preview Rollback"):
            st.session_state.rollback_preview = run_async(flow.preview())
            st.session_state.rollback_step = "previewing"
            st.rerun()

    if st.session_state.rollback_step in ("previewing", "confirming"):
        preview = st.session_state.rollback_preview

        col1, col2, col3 = st.columns(3)
        col1.metric("Bills to Delete", preview.bills_to_delete)
        col2.metric("Products to Unlink", preview.products_to_update)
        col3.metric("Estimated Time", f"{preview.estimated_duration_seconds}s")

        for risk in preview.risks:
            st.markdown(f"""
            <div class="warning-box">⚠️ {risk}</div>
            """, unsafe_allow_html=True)

        if st.session_state.rollback_step == "previewing":
            col1, col2 = st.columns(2)
            with col1:
                if st.button("Continue", type="primary"):
                    st.session_state.rollback_step = "confirming"
                    st.rerun()
            with col2:
                if st.button("Cancel"):
                    st.session_state.rollback_step = "idle"
                    st.rerun()
        else:
            st.error("This cannot be undone. Are you absolutely sure?")
            col1, col2 = st.columns(2)
            with col1:
                if st.button("🗑️ Yes, Roll Back", type="primary"):
                    st.session_state.rollback_step = "idle"
                    try:
                        result = run_with_progress(flow.tracker, flow.execute())
                        if result is not None:
                            st.success(
                                f"✅ Unlinked {result.products_updated} products and "
                                f"deleted {result.bills_deleted} bills."
                            )
                            if result.total_errors:
                                st.warning(f"⚠️ {result.total_errors} items failed.")
                    except Exception as e:
                        st.error(f"Rollback failed: {str(e)}")
            with col2:
                if st.button("Cancel"):
                    st.session_state.rollback_step = "idle"
                    st.rerun()

    render_run_state(flow.state)


if __name__ == "__main__":
    main()
