"""Instructor portal gradebook: grading, rosters, assessments and quiz import."""
