"""
The MODEL layer contains pure data structures and the canvas state logic.
It has NO knowledge of the GUI (Qt): layouts, options, selection, steps and
journal response records.
"""
