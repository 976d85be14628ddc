"""Storage backends: source documents, tabular sheets and the tagged corpus."""
