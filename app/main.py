import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import asyncio
from datetime import date, datetime, timezone

import pandas as pd
import plotly.express as px
import plotly.graph_objects as go
import streamlit as st

from tracker.backup import backup_filename, export_excel, export_json, parse_backup, to_frames
from tracker.config import load_settings
from tracker.connectivity import sync_status
from tracker.functional import check_allocation
from tracker.log import configure_logging
from tracker.reports import dashboard_summary, monthly_expenses, recent_expenses, segment_summaries, top_segments
from tracker.session import sign_in
from tracker.store import build_store
from tracker.sync import TRANSIENT_ERRORS

st.set_page_config(page_title="Expense Tracker", layout="wide")

settings = load_settings()
configure_logging(settings.log_level)

CURRENCY = "BDT"


def money(value: float) -> str:
    return f"{value:,.0f} {CURRENCY}"


st.sidebar.markdown("### 👤 Account")
if "store" not in st.session_state:
    if st.sidebar.button("Sign in (demo account)"):
        store = build_store(settings, sign_in())
        asyncio.run(store.load())
        st.session_state.store = store
        st.rerun()
    st.title("Expense Tracker")
    st.info("Sign in to start tracking incomes, expenses and budget segments.")
    st.stop()

store = st.session_state.store
user = store.session.user
st.sidebar.caption(f"Hello, {user.name}!" if user else "Signed in")
if st.sidebar.button("Sign out"):
    store.close()
    del st.session_state["store"]
    st.rerun()

online = st.sidebar.toggle("Online", value=store.is_online, help="Simulate losing the connection")
if online != store.is_online:
    store.monitor.set_online(online)
    st.rerun()
if settings.probe_host and st.sidebar.button("📶 Check connection"):
    asyncio.run(store.monitor.probe())
    st.rerun()

status = sync_status(store.is_online, store.is_syncing)
if status:
    st.sidebar.warning(status)


def run_retry():
    try:
        asyncio.run(store.engine.retry())
    except TRANSIENT_ERRORS as exc:
        st.sidebar.error(f"Sync failed, changes stay queued: {exc}")
        return False
    return True


if store.engine.retry_due() and run_retry():
    st.rerun()
pending = len(store.queue)
st.sidebar.caption(f"{pending} change(s) waiting to sync")
if pending and store.is_online and st.sidebar.button("🔄 Retry sync") and run_retry():
    st.rerun()

menu = st.sidebar.radio("Menu", ["🏠 Dashboard", "💵 Income", "🧾 Expenses", "🗂 Segments", "💾 Backup"])

data = store.data

if menu == "🏠 Dashboard":
    st.title("🏠 Dashboard")
    summary = dashboard_summary(data)
    k1, k2, k3, k4 = st.columns(4)
    with k1:
        st.metric("Total Income", money(summary["total_income"]))
    with k2:
        st.metric("Total Expenses", money(summary["total_expenses"]))
    with k3:
        st.metric("Balance", money(summary["balance"]))
    with k4:
        st.metric("Unallocated", money(summary["unallocated"]))

    summaries = segment_summaries(data)
    if summaries:
        df_seg = pd.DataFrame(
            [{"Segment": s.segment.name, "Allocated": s.segment.allocated_amount, "Spent": s.spent} for s in summaries]
        )
        fig_seg = go.Figure()
        fig_seg.add_trace(go.Bar(x=df_seg["Segment"], y=df_seg["Allocated"], name="Allocated"))
        fig_seg.add_trace(go.Bar(x=df_seg["Segment"], y=df_seg["Spent"], name="Spent"))
        fig_seg.update_layout(barmode="group", title="Budget vs Spent", margin=dict(t=40, b=10, l=10, r=10))
        st.plotly_chart(fig_seg, use_container_width=True)

        top = list(top_segments(data, 6))
        if top:
            fig_pie = px.pie(
                pd.DataFrame(top, columns=["Segment", "Spent"]),
                values="Spent",
                names="Segment",
                title="Spending by Segment",
                color="Segment",
                color_discrete_map={s.name: s.color for s in data.segments},
            )
            st.plotly_chart(fig_pie, use_container_width=True)

    months = monthly_expenses(data.expenses)
    if months:
        fig_m = px.bar(x=list(months), y=list(months.values()), labels={"x": "Month", "y": f"Expenses ({CURRENCY})"},
                       title="Monthly Expenses")
        st.plotly_chart(fig_m, use_container_width=True)

    st.subheader("Recent Expenses")
    names = {s.id: s.name for s in data.segments}
    recent = recent_expenses(data.expenses, 10)
    if recent:
        st.table(pd.DataFrame([
            {"Title": e.title, "Amount": money(e.amount), "When (UTC)": e.timestamp.strftime("%Y-%m-%d %H:%M"),
             "Segment": names.get(e.segment_id, "N/A")}
            for e in recent
        ]))
    else:
        st.info("No expenses yet.")

elif menu == "💵 Income":
    st.title("💵 Income")
    with st.form("income_form", clear_on_submit=True):
        title = st.text_input("Title")
        amount = st.number_input(f"Amount ({CURRENCY})", min_value=0.0, step=100.0)
        when = st.date_input("Date", value=date.today())
        if st.form_submit_button("Add Income") and title:
            store.add_income({"title": title, "amount": amount, "date": when})
            st.rerun()

    for income in sorted(data.incomes, key=lambda i: i.date, reverse=True):
        c1, c2, c3 = st.columns([4, 2, 1])
        c1.write(f"**{income.title}** · {income.date.isoformat()}")
        c2.write(money(income.amount))
        if c3.button("🗑", key=f"del_inc_{income.id}"):
            store.delete_income(income.id)
            st.rerun()

elif menu == "🧾 Expenses":
    st.title("🧾 Expenses")
    if not data.segments:
        st.warning("Create a budget segment before adding expenses.")
    else:
        seg_names = {s.name: s.id for s in data.segments}
        with st.form("expense_form", clear_on_submit=True):
            title = st.text_input("Title")
            amount = st.number_input(f"Amount ({CURRENCY})", min_value=0.0, step=10.0)
            day = st.date_input("Date", value=date.today())
            at = st.time_input("Time (UTC)", value=datetime.now(timezone.utc).time().replace(microsecond=0))
            segment = st.selectbox("Segment", list(seg_names))
            if st.form_submit_button("Add Expense") and title:
                result = store.add_expense({
                    "title": title,
                    "amount": amount,
                    "timestamp": datetime.combine(day, at, tzinfo=timezone.utc),
                    "segment_id": seg_names[segment],
                })
                if result.is_left():
                    st.error(result.get_error()["message"])
                else:
                    st.rerun()

    names = {s.id: s.name for s in data.segments}
    for expense in recent_expenses(data.expenses):
        c1, c2, c3 = st.columns([4, 2, 1])
        c1.write(f"**{expense.title}** · {expense.timestamp.strftime('%Y-%m-%d %H:%M')} · {names.get(expense.segment_id, 'N/A')}")
        c2.write(money(expense.amount))
        if c3.button("🗑", key=f"del_exp_{expense.id}"):
            store.delete_expense(expense.id)
            st.rerun()

elif menu == "🗂 Segments":
    st.title("🗂 Budget Segments")
    summary = dashboard_summary(data)
    c1, c2 = st.columns(2)
    c1.metric("Total Income", money(summary["total_income"]))
    c2.metric("Unallocated", money(summary["unallocated"]))

    with st.form("segment_form", clear_on_submit=True):
        name = st.text_input("Segment Name")
        allocated = st.number_input(f"Allocated Amount ({CURRENCY})", min_value=0.0, step=100.0)
        if st.form_submit_button("Create Segment") and name:
            check = check_allocation(data.segments, data.incomes, allocated)
            if check.is_left():
                st.warning(check.get_error()["message"])
            else:
                store.add_segment({"name": name, "allocated_amount": allocated})
                st.rerun()

    for item in segment_summaries(data):
        seg = item.segment
        with st.expander(f"{seg.name} · {money(item.spent)} / {money(seg.allocated_amount)}"):
            if seg.allocated_amount:
                st.progress(min(1.0, item.spent / seg.allocated_amount))
            st.caption(f"Remaining: {money(item.remaining)}")
            if st.button("Delete segment", key=f"del_seg_{seg.id}"):
                result = store.delete_segment(seg.id)
                if result.is_left():
                    st.error(result.get_error()["message"])
                else:
                    st.rerun()

elif menu == "💾 Backup":
    st.title("💾 Backup & Export")
    st.download_button(
        "⬇ Export JSON backup",
        export_json(data),
        file_name=backup_filename(),
        mime="application/json",
    )
    st.download_button(
        "⬇ Export Excel",
        export_excel(data),
        file_name=f"expense-tracker-{date.today().isoformat()}.xlsx",
        mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    )
    for sheet, frame in to_frames(data).items():
        st.subheader(sheet)
        st.dataframe(frame, use_container_width=True)

    uploaded = st.file_uploader("Import a JSON backup", type=["json"])
    if uploaded is not None and st.button("Replace all data with this backup"):
        result = parse_backup(uploaded.getvalue().decode("utf-8")).bind(store.replace_all_data)
        if result.is_left():
            st.error(f"Import failed: {result.get_error()['message']}")
        else:
            st.success("Data imported successfully.")
