"""
Trivia Game: Open Trivia DB questions, a score that races to zero, and a leaderboard.
"""
