"""Share relay: forwards uploaded images to a public image host."""
