"""
Streamlit Frontend for VozFinanças

The screen a user keeps open while talking about their spending.

DESIGN PRINCIPLES:
1. Locked until the password is entered
2. One button to start and stop listening
3. A status line that always says what the app is doing
4. Totals and the day's list update after every change
5. Errors in plain language, never raw exceptions

Recording runs on its own event loop in a background thread, because a
Streamlit script run must finish for the page to stay interactive. The
status panel polls the session once a second.
"""

import asyncio
from datetime import date
from typing import Optional

import streamlit as st

from vozfinancas.audit import configure_logging
from vozfinancas.auth import GateError, PasswordGate
from vozfinancas.config import get_settings
from vozfinancas.models.audit import AuditEventBuilder
from vozfinancas.models.status import AppStatus
from vozfinancas.orchestrator import (
    AppComponents,
    BackgroundRecorder,
    create_app_components,
    status_for_error,
)


# Page configuration
st.set_page_config(
    page_title="VozFinanças",
    page_icon="🎙️",
    layout="centered",
)


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@st.cache_resource
def get_components() -> AppComponents:
    """Get or create application components (cached)."""
    configure_logging(debug=get_settings().app.debug_mode)
    try:
        components = create_app_components(use_storage=True)
    except Exception as e:
        st.error(f"Falha ao inicializar o armazenamento: {e}")
        components = create_app_components(use_storage=False)
    if components.replicator is not None:
        run_async(components.replicator.probe())
    return components


def session_gate(components: AppComponents) -> PasswordGate:
    """The shared password, with the unlocked flag kept per browser session."""
    return components.gate.bind(st.session_state)


def render_lock_screen(gate: PasswordGate) -> None:
    st.title("🔒 VozFinanças")

    if gate.needs_setup:
        st.write("Crie uma senha para proteger seus gastos.")
        with st.form("setup"):
            password = st.text_input("Nova senha", type="password")
            if st.form_submit_button("Criar senha", type="primary"):
                try:
                    gate.setup(password)
                    st.rerun()
                except GateError as e:
                    st.error(str(e))
        return

    with st.form("unlock"):
        password = st.text_input("Senha", type="password")
        if st.form_submit_button("Entrar", type="primary"):
            if gate.unlock(password):
                st.rerun()
            else:
                st.error("Senha incorreta.")


@st.fragment(run_every="1s")
def render_status_panel() -> None:
    recorder: Optional[BackgroundRecorder] = st.session_state.get("recorder")
    status = recorder.session.status if recorder else st.session_state.get("status", AppStatus.IDLE)

    if status.is_error:
        st.error(status.value)
    else:
        st.info(status.value)

    if recorder and recorder.session.last_response:
        st.markdown(f"**Assistente:** {recorder.session.last_response}")

    recording = recorder is not None and recorder.alive
    if recording:
        if st.button("⏹️ Parar", type="primary", use_container_width=True):
            recorder.stop()
    else:
        if recorder is not None:
            # Finished since last poll: refresh totals and the list
            st.session_state.status = recorder.session.status
            st.session_state.recorder = None
            st.rerun()
        if st.button("🎙️ Falar", type="primary", use_container_width=True):
            components = get_components()
            recorder = BackgroundRecorder(
                components.recording_session(),
                components.audit_logger,
                replicator=components.replicator,
            )
            st.session_state.recorder = recorder
            recorder.start()
            st.rerun(scope="fragment")


def render_summary(components: AppComponents) -> None:
    summary = components.ledger.refresh_summary()
    st.metric("Gasto hoje", f"R$ {summary.daily:.2f}")
    if summary.by_category:
        columns = st.columns(min(3, len(summary.by_category)))
        for i, entry in enumerate(summary.by_category):
            columns[i % len(columns)].metric(entry.name, f"R$ {entry.total:.2f}")


def render_expense_list(components: AppComponents, recording: bool) -> None:
    st.subheader("Gastos")
    day = st.date_input("Dia", value=date.today(), format="DD/MM/YYYY")
    expenses = components.ledger.expenses_on(day)

    if not expenses:
        st.caption("Nenhum gasto neste dia.")
        return

    for expense in expenses:
        col1, col2, col3 = st.columns([4, 2, 1])
        col1.markdown(f"**{expense.description}**  \n{expense.category_name}")
        col2.markdown(f"R$ {expense.amount:.2f}  \n{expense.date:%H:%M}")
        if col3.button("🗑️", key=f"del-{expense.id}", disabled=recording):
            if components.ledger.delete(expense.id):
                components.audit_logger.log(AuditEventBuilder.expense_deleted(expense.id))
                if components.replicator is not None:
                    components.replicator.notify_deleted(expense.id)
            st.rerun()


def main():
    """Main application entry point."""
    components = get_components()
    gate = session_gate(components)

    if gate.is_locked:
        render_lock_screen(gate)
        return

    if "permission_probed" not in st.session_state:
        error = run_async(components.microphone().probe_permission())
        st.session_state.permission_probed = True
        if error is not None:
            st.session_state.status = status_for_error(error)

    st.sidebar.title("🎙️ VozFinanças")
    st.sidebar.markdown(
        """
        **Experimente dizer:**
        - "Gastei 25 reais com almoço"
        - "Quanto gastei hoje?"
        - "Apague o último gasto"
        """
    )
    if st.sidebar.button("🔒 Bloquear"):
        recorder = st.session_state.get("recorder")
        if recorder is not None:
            recorder.stop()
        gate.lock()
        st.rerun()

    st.title("VozFinanças")
    render_status_panel()
    recorder = st.session_state.get("recorder")
    render_summary(components)
    render_expense_list(components, recording=recorder is not None and recorder.alive)


if __name__ == "__main__":
    main()
