"""Tests for oauthlogin."""
