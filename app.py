"""
The Infinite Bitcoin Text
Main entry point with Streamlit navigation
"""

import logging

import streamlit as st
from utils.config import APP_TITLE

logging.basicConfig(level=logging.INFO)

# Page configuration
st.set_page_config(
    page_title=APP_TITLE,
    page_icon="₿",
    layout="centered",
    initial_sidebar_state="collapsed"
)

# Define pages
feed = st.Page("pages/feed.py", title="Feed", url_path="", default=True)

pg = st.navigation([feed], position="hidden")

st.markdown(f"# {APP_TITLE}")
st.caption("READ_ONLY_MODE")

# Run selected page
pg.run()
