"""
Launchpad
=========

Registers software projects and walks them through build, analysis,
auto-fix, QA, deployment and post-deploy self-healing.
"""

__version__ = "0.1.0"
