"""Redmine/Jira issue synchronization service"""
