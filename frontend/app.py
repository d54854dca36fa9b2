"""
frontend/app.py — Streamlit dashboard for the town information board.

Polls the dashboard backend (GET /dashboard) and renders the environment and
astronomy cards, the freshness indicator and the error banner. The refresh
and retry buttons call POST /refresh.
"""

import os
from datetime import date
from pathlib import Path

import httpx
import streamlit as st
from dotenv import load_dotenv

load_dotenv(dotenv_path=Path(__file__).parent.parent / ".env")

DASHBOARD_PORT = int(os.getenv("DASHBOARD_PORT", "8001"))
DASHBOARD_URL = f"http://localhost:{DASHBOARD_PORT}/dashboard"
REFRESH_URL = f"http://localhost:{DASHBOARD_PORT}/refresh"
TOWN = os.getenv("DASHBOARD_TOWN", "Baja")
POLL_SECONDS = 30

HU_MONTHS = (
    "január", "február", "március", "április", "május", "június",
    "július", "augusztus", "szeptember", "október", "november", "december",
)
HU_WEEKDAYS = ("hétfő", "kedd", "szerda", "csütörtök", "péntek", "szombat", "vasárnap")

st.set_page_config(page_title=f"{TOWN} Város Info", page_icon="🌊", layout="wide")


def _hu_date(today: date) -> str:
    return f"{today.year}. {HU_MONTHS[today.month - 1]} {today.day}., {HU_WEEKDAYS[today.weekday()]}"


def _get_dashboard() -> tuple[dict | None, str | None]:
    """Return (body, error_message); exactly one of them is set."""
    try:
        with httpx.Client(timeout=10.0) as client:
            response = client.get(DASHBOARD_URL)
    except httpx.RequestError:
        return None, "Nem sikerült csatlakozni a műszerfal szerveréhez. Fut a háttérszolgáltatás?"

    if response.status_code == 200:
        return response.json(), None
    try:
        detail = response.json().get("error")
    except ValueError:
        detail = None
    return None, detail or f"A műszerfal szervere hibát jelzett ({response.status_code})."


def _post_refresh() -> None:
    # The backend fetch can take a while: it runs a live web search.
    try:
        with httpx.Client(timeout=90.0) as client:
            client.post(REFRESH_URL)
    except httpx.RequestError:
        st.toast("Nem sikerült elérni a szervert.")


def _render_cards(cards: list[dict], section: str, columns: int) -> None:
    selected = [c for c in cards if c["section"] == section]
    cols = st.columns(columns)
    for i, card in enumerate(selected):
        with cols[i % columns], st.container(border=True):
            st.caption(card["title"].upper())
            unit = f" {card['unit']}" if card["unit"] else ""
            st.markdown(f"### {card['value']}{unit}")


# ── Header ─────────────────────────────────────────────────────────────────────

st.caption("📍 MAGYARORSZÁG, BÁCS-KISKUN")
st.title(f"{TOWN} Város")
st.caption(f"🕒 {_hu_date(date.today())}")
st.write(
    "Valós idejű információs műszerfal: időjárás, vízállás és "
    f"csillagászati adatok {TOWN} térségéből."
)


# ── Dashboard body ─────────────────────────────────────────────────────────────

@st.fragment(run_every=POLL_SECONDS)
def dashboard() -> None:
    body, error = _get_dashboard()
    if error is not None:
        st.error(error)
        return

    state = body["state"]
    snapshot = state.get("snapshot")
    refreshing = state["refreshing"]

    status_col, button_col = st.columns([5, 1])
    with status_col:
        if snapshot:
            st.caption(f"{'🟡' if refreshing else '🟢'} Utolsó frissítés: {snapshot['lastUpdated']}")
        else:
            st.caption("🟡 Frissítés...")
    with button_col:
        if st.button("↻ Frissítés", disabled=refreshing, key="refresh"):
            _post_refresh()
            st.rerun(scope="fragment")

    if state["status"] == "loading":
        st.info("⏳ Adatok betöltése...")
        return

    if state["status"] == "failed":
        st.error(state["error"])
        if st.button("Újrapróbálkozás", disabled=refreshing, key="retry"):
            _post_refresh()
            st.rerun(scope="fragment")
        return

    st.subheader("Környezeti Adatok", divider="gray")
    _render_cards(body["cards"], "environment", 3)
    st.subheader("Csillagászati Adatok", divider="gray")
    _render_cards(body["cards"], "astronomy", 3)


dashboard()

# ── Footer ─────────────────────────────────────────────────────────────────────

st.divider()
st.caption(
    f"© {date.today().year} {TOWN} Város Info Dashboard · "
    "[Hydroinfo](https://www.hydroinfo.hu) · [Időkép](https://www.idokep.hu)"
)
