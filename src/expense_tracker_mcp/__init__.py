"""
Expense Tracker MCP - reactive expense tracking core exposed through MCP.
"""

__version__ = "0.1.0"
