"""
Citation Visibility Engine

Tracks how often AI answer engines cite a domain:
1. Dispatches queries to Perplexity, ChatGPT, Claude and SerpApi engines
2. Extracts citation evidence and scores visibility per engine and query
3. Folds runs into trends and compares against competitors
4. Generates prioritized recommendations
"""

__version__ = "0.1.0"
