"""Streamlit UI for managing compliance documents and asking questions."""
from __future__ import annotations

import os
from typing import Any, Dict

import requests
import streamlit as st
from dotenv import load_dotenv

load_dotenv()

DEFAULT_API = "http://localhost:8000"
API_BASE = os.getenv("BACKEND_URL") or os.getenv("COMPLIANCE_QA_API_BASE")
if not API_BASE:
    try:
        API_BASE = st.secrets["api_base"]
    except Exception:  # secrets file optional
        API_BASE = DEFAULT_API

st.set_page_config(page_title="Compliance Document Q&A", layout="wide")
st.title("Compliance Document Q&A")

if "session_id" not in st.session_state:
    st.session_state.session_id = None
if "turns" not in st.session_state:
    st.session_state.turns = []

st.sidebar.header("1. Add a Document")
with st.sidebar.form("upload", clear_on_submit=True):
    title = st.text_input("Title")
    doc_type = st.selectbox("Type", ["policy", "guideline", "audit"])
    tags = st.text_input("Tags (comma-separated)")
    content = st.text_area("Content", height=200)
    uploaded = st.file_uploader("…or a text file", type=["txt", "md"])
    submitted = st.form_submit_button("Upload", use_container_width=True, type="primary")

if submitted:
    form = {"title": title, "type": doc_type, "tags": tags, "content": content}
    files = {"file": (uploaded.name, uploaded.getvalue(), "text/plain")} if uploaded else None
    resp = requests.post(f"{API_BASE}/api/admin/documents", data=form, files=files, timeout=600)
    if resp.ok:
        st.sidebar.success(f"Stored document {resp.json()['document']['id']}")
    else:
        st.sidebar.error(f"Failed: {resp.status_code} – {resp.json().get('error', resp.text)}")

st.sidebar.header("2. Documents")
listing = requests.get(f"{API_BASE}/api/admin/documents", timeout=60)
if listing.ok:
    for doc in listing.json().get("documents", []):
        col1, col2 = st.sidebar.columns([4, 1])
        col1.markdown(f"**{doc['title']}** · `{doc['type']}`")
        if col2.button("✕", key=f"del-{doc['id']}"):
            requests.delete(f"{API_BASE}/api/admin/documents/{doc['id']}", timeout=60)
            st.rerun()
else:
    st.sidebar.error(f"Could not list documents: {listing.status_code}")

st.header("3. Ask a Compliance Question")
question = st.text_area("Question", height=100)
col_ask, col_reset = st.columns([1, 1])
if col_reset.button("New conversation"):
    st.session_state.session_id = None
    st.session_state.turns = []

if col_ask.button("Ask", type="primary"):
    if not question.strip():
        st.warning("Please type a question first.")
    else:
        payload: Dict[str, Any] = {"query": question}
        if st.session_state.session_id:
            payload["sessionId"] = st.session_state.session_id
        with st.spinner("Searching policies…"):
            resp = requests.post(f"{API_BASE}/api/chat", json=payload, timeout=120)
        if resp.ok:
            data = resp.json()
            st.session_state.session_id = data["sessionId"]
            st.session_state.turns.append((question, data))
        else:
            body = resp.json()
            st.error(f"{body.get('error')}: {body.get('details', '')}")

for asked, data in reversed(st.session_state.turns):
    st.subheader(asked)
    st.write(data["response"])
    if data["context"]:
        st.caption("Sources")
        for idx, citation in enumerate(data["context"], start=1):
            st.markdown(f"**{idx}.** {citation['title']} ({citation['type']}) – score {citation['relevanceScore']:.3f}")
    debug = data["debug"]
    st.caption(
        f"documents: {debug['documentsFound']} · context: {debug['contextLength']} chars · "
        f"prompt: {debug['promptLength']} chars"
    )

st.caption("API base: %s · session: %s" % (API_BASE, st.session_state.session_id or "new"))
