# -----------------------------------------------------------------------------
# Streamlit Frontend for the Formula Calculator
# Purpose:
#   Minimal host page to (1) browse saved calculators, (2) open a calculator
#   block (stored id or inline JSON) against note frontmatter, and (3) edit
#   inputs, calculate, reset and copy results through the API.
#---------------------------------------------------------------------------

import os, json, requests, yaml, streamlit as st
from dotenv import load_dotenv

# Load .env to pick API_URL at runtime for local/remote backends
load_dotenv()
API_URL = os.getenv("API_URL","http://127.0.0.1:8000")

SAMPLE_BLOCK = json.dumps({
    "name": "Rectangle",
    "variables": [
        {"name": "w", "label": "Width", "type": "number", "value": 3},
        {"name": "h", "label": "Height", "type": "number", "value": 4, "propertyMap": "height"},
    ],
    "formulas": [{"name": "Area", "value": "w * h"}, {"name": "Diagonal", "value": "sqrt(w**2 + h**2)"}],
    "autoCalculate": True,
    "renderFormula": True,
}, indent=2)

def show_api_error(r: requests.Response, what: str):
    # Definition-level errors come back as {detail: {kind, message}}
    try:
        detail = r.json().get("detail", {})
        st.error(f"{what} error ({detail.get('kind', r.status_code)}): {detail.get('message', r.text)}")
    except ValueError:
        st.error(f"{what} error: {r.text}")

# Page setup and header
st.set_page_config(page_title="Formula Calculator", layout="centered")
st.title("Formula Calculator")

# ---------------- Sidebar: Saved calculators ----------------------------------
with st.sidebar:
    st.subheader("Saved calculators")
    r = requests.get(f"{API_URL}/calculators")
    if r.status_code == 200:
        items = r.json()["items"]
        st.caption(f"{len(items)} saved")
        for it in items:
            st.write(f"**{it['name']}** · `{it['id']}`")
            if st.button("Insert reference", key=f"ref-{it['id']}"):
                snip = requests.get(f"{API_URL}/calculators/{it['id']}/snippet").json()["snippet"]
                st.code(snip, language="markdown")
    else:
        show_api_error(r, "Catalog")

# ---------------- Block + frontmatter -----------------------------------------
source = st.text_area("Calculator block (id or inline JSON)", height=220, value=SAMPLE_BLOCK)
front_text = st.text_area("Note frontmatter (YAML, optional)", height=80, value="height: 10")

if st.button("Open calculator", type="primary"):
    try:
        frontmatter = yaml.safe_load(front_text) or {}
    except yaml.YAMLError as e:
        st.error(f"Frontmatter is not valid YAML: {e}")
        st.stop()
    r = requests.post(f"{API_URL}/render", json={"source": source, "frontmatter": frontmatter})
    if r.status_code != 200:
        show_api_error(r, "Render")
        st.session_state.pop("calc", None)
    else:
        st.session_state["calc"] = r.json()
        st.session_state["frontmatter"] = frontmatter
        st.session_state["values"] = dict(r.json()["initial_values"])
        st.session_state["last"] = r.json()

calc = st.session_state.get("calc")
if calc:
    definition = calc["calculator"]
    st.subheader(definition["name"])
    for row in calc["rendered_formulas"]:
        st.markdown(f"**{row['name']}**: `{row['text']}`")

    # ---------------- Inputs -----------------------------------------------------
    values = st.session_state["values"]
    for v in definition["variables"]:
        label = v.get("label") or v["name"]
        key = f"in-{v['name']}"
        if v["type"] == "boolean":
            values[v["name"]] = st.checkbox(label, value=bool(values.get(v["name"])), key=key)
        else:
            cur = values.get(v["name"])
            values[v["name"]] = st.text_input(label, value="" if cur is None else str(cur), key=key)

    def run_calculate():
        r = requests.post(f"{API_URL}/calculate", json={
            "source": source,
            "frontmatter": st.session_state.get("frontmatter"),
            "inputs": values,
        })
        if r.status_code != 200:
            show_api_error(r, "Calculate")
        else:
            st.session_state["last"] = r.json()

    c1, c2 = st.columns(2)
    if c1.button("Calculate") or definition.get("autoCalculate"):
        run_calculate()
    if c2.button("Reset to defaults"):
        st.session_state["values"] = dict(calc["initial_values"])
        for v in definition["variables"]:
            st.session_state.pop(f"in-{v['name']}", None)
        st.info("Values reset.")
        st.rerun()

    # ---------------- Results ----------------------------------------------------
    last = st.session_state.get("last") or {}
    for row in last.get("results", []):
        if row["ok"]:
            st.success(f"{row['name']}: {row['display']}")
        else:
            st.error(f"{row['name']}: {row['display']}")
    if last.get("summary"):
        with st.expander("Copy results as Markdown"):
            st.code(last["summary"], language="markdown")
    with st.expander("Trace"):
        st.code(json.dumps(last.get("trace", []), indent=2))
