"""Grid state: cell store, merges, selection, history and the workbook controller."""
