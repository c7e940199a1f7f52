"""Workflow services: each public function is one business operation."""
