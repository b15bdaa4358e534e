"""
Test suite for the quiz relay.

Covers the extraction engine, the browser pool and page driver, the command
relay and session store, the completion client and the chat workflow.
"""
