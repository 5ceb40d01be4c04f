"""Entry points that assemble the lecture report and the listings dashboard."""
