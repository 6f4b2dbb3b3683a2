"""Cluster membership operator: execution space lifecycle for registered clusters."""
