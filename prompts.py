"""
Prompt text sent when the user uploads a package photo without typing a
question, and the rejection phrase the model is told to answer with when
the package is not a NODE product.

coffee_analysis.py keys its re-upload sentinel on REJECTION_PHRASE, so the
two must stay in sync.
"""

REJECTION_PHRASE = "Please take a picture of a product sold by NODE COFFEE ROASTERS"

PACKAGE_ANALYSIS_PROMPT = f"""The image uploaded is a coffee bean product sold by the artisanal coffee shop called NODE COFFEE ROASTERS.

STEP 1 - VALIDATION:
If the NODE logo (dark navy blue, circular, around center of the package) is not present, respond with: "{REJECTION_PHRASE}."

STEP 2 - ROAST LEVEL ANALYSIS (CRITICAL):
Locate the roast level indicator - a horizontal row of 5 circles positioned between the words "LIGHT" and "DARK" on the package.

Examine each circle from LEFT to RIGHT:
- Filled circles appear DARK/BLACK/SOLID
- Unfilled circles appear WHITE/LIGHT with just an outline
- Count ONLY the consecutive filled circles starting from the left

Report your findings as:
"Circle analysis: [describe what you see for each of the 5 positions]"
"Roast level: X/5"

STEP 3 - COMPLETE ANALYSIS:
Provide a concise expert description suitable for selling to customers, written as a coffee professional would describe it.

Include these metrics:
- Roast Profile: X/5 (already determined above)
- Tasting Notes: [extract from package text]
- Origin: [extract from package text]"""
