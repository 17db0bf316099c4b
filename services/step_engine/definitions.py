# services/step_engine/definitions.py
# Static definitions for the 12-step workbook: steps, parts, sections and items.

BIG_BOOK_URL = "https://www.aa.org/the-big-book"
BIG_BOOK_LABEL = "Read Big Book Online"
READING_TITLE = "Read With Intent and Purpose"

THIRD_STEP_PRAYER = (
    "God, I offer myself to Thee—to build with me and to do with me as Thou wilt. "
    "Relieve me of the bondage of self, that I may better do Thy will. Take away my "
    "difficulties, that victory over them may bear witness to those I would help of Thy "
    "Power, Thy Love, and Thy Way of life. May I do Thy will always!"
)

SEVENTH_STEP_PRAYER = (
    "My Creator, I am now willing that you should have all of me, good and bad. I pray "
    "that you now remove from me every single defect of character which stands in the way "
    "of my usefulness to you and my fellows. Grant me strength, as I go out from here, to "
    "do your bidding. Amen."
)


def _reading(section_id, item_key, item_text, instruction=None, title=READING_TITLE):
    section = {
        "id": section_id,
        "type": "reading",
        "title": title,
        "resource_url": BIG_BOOK_URL,
        "resource_label": BIG_BOOK_LABEL,
        "items": [{"key": item_key, "text": item_text}],
    }
    if instruction:
        section["instruction"] = instruction
    return section


def _definitions(section_id, *words):
    return {
        "id": section_id,
        "type": "definitions",
        "title": "Definitions",
        "items": [{"key": word.lower(), "prompt": f"Define: {word}"} for word in words],
    }


# --- Steps ---
STEPS = [
    {
        "number": 1,
        "title": "Powerlessness",
        "quote": "We admitted we were powerless over alcohol—that our lives had become unmanageable.",
        "parts": [
            {
                "part_number": 1,
                "has_assignment_date": True,
                "sections": [
                    _definitions("s1_p1_definitions", "Admit", "Powerless", "Unmanageable"),
                    _reading(
                        "s1_p1_reading", "pages_xi_43", "Pages xi-43",
                        instruction="Highlight areas that demonstrate 'powerless' and 'unmanageability'",
                    ),
                ],
            },
            {
                "part_number": 2,
                "has_assignment_date": True,
                "sections": [
                    {
                        "id": "s1_p2_powerlessness",
                        "type": "list",
                        "title": "Examples of Powerlessness",
                        "instruction": "List (5) specific examples of 'powerlessness' when you were drinking.",
                        "items": [
                            {"key": "powerless_examples", "count": 5, "has_date": True, "has_ripple_effects": True},
                        ],
                    },
                    {
                        "id": "s1_p2_unmanageability",
                        "type": "list",
                        "title": "Examples of Unmanageability",
                        "instruction": "List (5) specific examples of 'unmanageability' when you were drinking.",
                        "items": [
                            {"key": "unmanageable_examples", "count": 5, "has_date": True, "has_ripple_effects": True},
                        ],
                    },
                ],
            },
        ],
    },
    {
        "number": 2,
        "title": "Higher Power",
        "quote": "Came to believe that a Power greater than ourselves could restore us to sanity.",
        "sections": [
            _definitions("s2_definitions", "Believe", "Restore", "Sanity", "Insanity"),
            _reading(
                "s2_reading", "pages_44_60", "Pages 44-60 (stop at ABC's)",
                instruction="Highlight areas that demonstrate 'insanity'",
            ),
            {
                "id": "s2_writing",
                "type": "writing",
                "title": "Writing",
                "items": [
                    {
                        "key": "insanity_examples",
                        "prompt": "Provide (10) specific examples of insanity from your own story",
                        "count": 10,
                        "sub_items": [
                            "whether you were drunk or not",
                            "relate back to the Big Book if possible",
                            "try not to be vague",
                        ],
                    },
                    {
                        "key": "higher_power",
                        "prompt": "Write (1) paragraph, tight and concise, of your higher power as you understand it.",
                    },
                    {
                        "key": "hp_examples",
                        "prompt": "Write (5) examples of higher power and you working together",
                        "count": 5,
                    },
                ],
            },
        ],
    },
    {
        "number": 3,
        "title": "Decision",
        "quote": "Made a decision to turn our will and our lives over to the care of God as we understood Him.",
        "parts": [
            {
                "part_number": 1,
                "has_assignment_date": True,
                "sections": [
                    _definitions(
                        "s3_p1_definitions",
                        "Selfish", "Self", "Decision", "Convinced", "Life", "Will", "Requirement",
                    ),
                    _reading("s3_p1_reading", "pages_60_63", "Pages 60-63 (stop at 'Next we launched')"),
                    {
                        "id": "s3_p1_todo",
                        "type": "todo",
                        "title": "To Do",
                        "items": [
                            {"key": "memorize_prayer", "text": "Start to memorize the 3rd Step Prayer"},
                            {"key": "informal_prayer", "text": "Okay to make the prayer less formal"},
                            {"key": "pray_10_days", "text": "Say 3rd step prayer every morning for 10 straight days"},
                            {
                                "key": "knees_together",
                                "text": "End Step 3 assignment by getting on knees together. Hold hands and say 3rd step prayer together.",
                            },
                        ],
                    },
                ],
            },
        ],
    },
    {
        "number": 4,
        "title": "Moral Inventory",
        "quote": "Made a searching and fearless moral inventory of ourselves.",
        "sections": [
            {
                "id": "s4_prayer",
                "type": "prayer",
                "title": "Prayer",
                "instruction": "Say prayer, 'God, please help me with my inventory' prior to working on each portion of your step 4 list.",
                "items": [],
            },
            _definitions("s4_definitions", "Launched", "Moral", "Vigorous", "Resentment", "Action", "Strenuous"),
            _reading("s4_reading", "pages_63_64", "Pages 63-64 (stop at 'Next we launched')"),
            {
                "id": "s4_resentments",
                "type": "resentment",
                "title": "Resentment List",
                "instruction": "Complete the 6-column resentment inventory",
                "items": [
                    {
                        "key": "column1",
                        "prompt": "Column 1 - Resentment",
                        "text": "List of your resentments (people, principals, things). Don't hold back. List anything and everything that you have resentment for; childhood through current.",
                    },
                    {
                        "key": "column2",
                        "prompt": "Column 2 - Cause",
                        "text": "Brief description of events with short paragraphs. List the top 2-3 events that led to this resentment.",
                    },
                    {
                        "key": "column3",
                        "prompt": "Column 3 - Affects My",
                        "text": "Read with intent and purpose: pg 64 (start at 'we asked ourself') - pg 65 (stop at 'considered it carefully')",
                        "checklist_options": [
                            "Self-esteem",
                            "Pocketbook",
                            "Ambition (things I want)",
                            "Personal relationships",
                            "Sexual relationships",
                            "Security (things I need)",
                        ],
                    },
                    {
                        "key": "column4",
                        "prompt": "Column 4 - My Part",
                        "text": "First, read and highlight with intent and purpose, pg 65 (start at 'the first thing') - pg 67 (stop at 'these matters straight'). Define: Selfish, Dishonest, Self-seeking. List where you were selfish, dishonest, or self-seeking.",
                    },
                    {
                        "key": "column5",
                        "prompt": "Column 5 - Fear",
                        "text": "First, make list of your fears (dump your list of fears. IE, fear of being judged, fear of failure, fear of financial insecurity). Then, write the following: 'God, why do I have this fear (insert the fear). Was it because self-reliance failed me? God, please remove this fear (insert fear) and direct my attention to what you would have me be.' Lastly, list the fear associated with each resentment.",
                    },
                    {
                        "key": "column6",
                        "prompt": "Column 6 - Sex",
                        "text": "First, read and highlight with intent and purpose, pg 68-70 (stop at 'heartache'). Review your sex conduct. Review each relationship whether that person is on your resentment list or not.",
                        "sub_items": [
                            "Where was I selfish?",
                            "Where was I dishonest?",
                            "Where was I inconsiderate?",
                            "Who did I hurt?",
                            "Did I unjustifiably arouse jealousy?",
                            "Did I unjustifiably arouse suspicion?",
                            "Did I unjustifiably arouse bitterness?",
                            "Where was I at fault?",
                            "What should I have done instead?",
                        ],
                    },
                    {"key": "sexual_ideal", "prompt": "Write paragraph of your sexual ideal."},
                ],
            },
        ],
    },
    {
        "number": 5,
        "title": "Admission",
        "quote": "Admitted to God, to ourselves, and to another human being the exact nature of our wrongs.",
        "sections": [
            _reading("s5_reading", "pages_72_75", "Pages 72-75 (stop at 'returning home')"),
            _definitions("s5_definitions", "Admit", "Exact", "Nature", "Wrong"),
            {
                "id": "s5_todo",
                "type": "todo",
                "title": "To Do",
                "items": [
                    {"key": "check_ideal", "text": "Check your description of Sexual Ideal and Ideal Partner"},
                    {"key": "5th_step_day", "text": "Set aside the entire day for 5th step meeting with step guide."},
                    {
                        "key": "meditation",
                        "text": "After 5th step session, receive receipt, and meditate for 1 hour focusing on what you covered during session.",
                    },
                ],
            },
        ],
    },
    {
        "number": 6,
        "title": "Readiness",
        "quote": "Were entirely ready to have God remove all these defects of character.",
        "sections": [
            _reading("s6_reading", "page_76_1", "Page 76 (first paragraph)"),
            _definitions("s6_definitions", "Objectionable", "Defect", "Willingness", "Indispensable", "Character"),
            {
                "id": "s6_defects",
                "type": "list",
                "title": "Character Defects",
                "instruction": "Make a list of your character defects.",
                "items": [
                    {"key": "defects_receipt", "text": "Start with receipt"},
                    {"key": "defects_spot", "text": "If you spot it, you got it. List it."},
                    {"key": "defects_manifest", "prompt": "Detail how each character defect manifests."},
                    {"key": "defects_opposite", "prompt": "List the opposite action of the character defect."},
                ],
            },
            {
                "id": "s6_assets",
                "type": "list",
                "title": "Character Assets",
                "instruction": "Make a list of your character assets",
                "items": [{"key": "assets_list", "prompt": "List your character assets"}],
            },
        ],
    },
    {
        "number": 7,
        "title": "Humility",
        "quote": "Humbly asked Him to remove our shortcomings.",
        "sections": [
            _reading("s7_reading", "page_76_2", "Page 76 (second paragraph)"),
            {
                "id": "s7_prayer",
                "type": "prayer",
                "title": "7th Step Prayer",
                "instruction": "Say the 7th step prayer each day upon awakening and/or at end of day for 14 days in a row.",
                "items": [
                    {"key": "focus_defects", "text": "Focus on 3 of your character defects in particular and ask them to be removed."},
                    {"key": "start_over", "text": "Start day over when character defect(s) show up (say 7th step prayer)"},
                    {"key": "8th_step_note", "text": "The 7th step will only have depth and weight if followed by an 8th step list"},
                ],
            },
        ],
    },
    {
        "number": 8,
        "title": "Amends List",
        "quote": "Made a list of all persons we had harmed, and became willing to make amends to them all.",
        "sections": [
            _reading("s8_reading", "page_76_3", "Page 76 (third paragraph)"),
            _definitions("s8_definitions", "Harm"),
            {
                "id": "s8_prayer",
                "type": "prayer",
                "title": "Prayer",
                "instruction": "Pray for your higher power to give you the will and courage to make 8th step list",
                "items": [],
            },
            {
                "id": "s8_amends_list",
                "type": "list",
                "title": "8th Step List",
                "instruction": "Make your list. Include people, places, and institutions. Include everything; don't hold back or edit.",
                "items": [
                    {
                        "key": "amends_list_dynamic",
                        "count": 10,
                        "has_ripple_effects": True,
                        "ripple_effects_label": "Specific Harm Committed",
                        "prompt": "List people, places, and institutions.",
                    },
                ],
            },
        ],
    },
    {
        "number": 9,
        "title": "Direct Amends",
        "quote": "Made direct amends to such people wherever possible, except when to do so would injure them or others.",
        "sections": [
            {
                "id": "s9_review",
                "type": "todo",
                "title": "Review",
                "items": [
                    {
                        "key": "review_list",
                        "text": "Review list with step guide to determine which are appropriate to put on step 9 list, or not.",
                    },
                ],
            },
            _reading("s9_reading", "pages_76_83", "Pages 76-83 (stop at 'the promises')"),
            {
                "id": "s9_scripts",
                "type": "writing",
                "title": "9th Step Scripts",
                "instruction": "Buy 4x6 or 3x5 cards for 9th step scripts. Write script for each person/place on 9th step list.",
                "items": [
                    {
                        "key": "script_template",
                        "text": "Script: 'I have been sober a while, but I might not stay sober unless I have done my utmost to straighten out my past. [State the specific harm]. I truly regret my behaviour and choices. What can I do to make this right.' [LISTEN]. Follow up with 'Did I leave anything out?' 3 times.",
                    },
                ],
            },
        ],
    },
    {
        "number": 10,
        "title": "Continued Inventory",
        "quote": "Continued to take personal inventory and when we were wrong promptly admitted it.",
        "sections": [
            _reading("s10_reading", "pages_83_88", "Pages 83-88 (through 'promises')"),
            {
                "id": "s10_daily_practice",
                "type": "todo",
                "title": "Daily Practice (30 Days)",
                "instruction": "Go through the following each time a resentment comes up for 30 days.",
                "items": [
                    {"key": "look_for", "text": "Look for where you were Selfish, Dishonest, Resentful, or Fearful."},
                    {"key": "ask_hp", "text": "Ask your higher power at once to remove the resentment."},
                    {
                        "key": "call_sponsor",
                        "text": "Call sponsor, step guide, or another person who has been through the steps in this format each time a resentment comes up and discuss.",
                    },
                    {"key": "make_amends", "text": "Make amends quickly if appropriate."},
                    {"key": "turn_thoughts", "text": "Resolutely turn your thoughts to someone you can help (alcoholic or not)"},
                    {"key": "no_chit_chat", "text": "Don't chit chat with person before you make the list."},
                    {"key": "take_notes", "text": "Take notes daily on your resentments"},
                ],
            },
        ],
    },
    {
        "number": 11,
        "title": "Prayer & Meditation",
        "quote": "Sought through prayer and meditation to improve our conscious contact with God as we understood Him, praying only for knowledge of His will for us and the power to carry that out.",
        "sections": [
            {
                "id": "s11_continue",
                "type": "todo",
                "title": "Continue Previous Steps",
                "items": [
                    {"key": "continue_9", "text": "Continue 9th Step if you haven't made amends to everyone on your list."},
                    {"key": "continue_10", "text": "Continue 10th Step"},
                ],
            },
            _reading(
                "s11_daily_reading", "upon_awakening", "Pages 86-89",
                instruction="Read 'Upon Awakening' each morning", title="Daily Practice",
            ),
            {
                "id": "s11_prayer",
                "type": "prayer",
                "title": "Prayer & Meditation",
                "items": [
                    {"key": "pray_meditate", "text": "Pray and meditate as described in pgs 86-89."},
                    {"key": "pray_sponsees", "text": "Pray specifically for sponsees; especially newcomers to work the 12th step"},
                ],
            },
        ],
    },
    {
        "number": 12,
        "title": "Spiritual Awakening",
        "quote": "Having had a spiritual awakening as the result of these steps, we tried to carry this message to alcoholics, and to practice these principles in all our affairs.",
        "sections": [
            _reading(
                "s12_reading", "pages_89_103", "Pages 89-103 ('Working With Others')",
                instruction="Study the 12th Step chapter",
            ),
            _definitions("s12_definitions", "Spiritual", "Awakening", "Principles"),
            {
                "id": "s12_carry_message",
                "type": "todo",
                "title": "Carrying the Message",
                "instruction": "The 12th Step is about service and helping others (check to indicate you read)",
                "items": [
                    {"key": "identify_help", "text": "Identify alcoholics or others you can help carry this message to."},
                    {"key": "available", "text": "Make yourself available to newcomers and those seeking help."},
                    {
                        "key": "sponsor_ready",
                        "text": "Consider becoming a sponsor when you have completed all 12 steps and discussed readiness with your step guide.",
                    },
                    {"key": "meeting_service", "text": "Find ways to be of service in meetings and your recovery community."},
                    {"key": "daily_practice", "text": "Practice these steps daily as a way of life, not just a program to complete."},
                ],
            },
            {
                "id": "s12_daily_practice",
                "type": "prayer",
                "title": "11th Step Daily Practice",
                "instruction": "Continue the practices from Step 11 as a lifelong commitment (check to indicate you read)",
                "items": [
                    {"key": "morning_meditation", "text": "Morning prayer and meditation"},
                    {
                        "key": "evening_review",
                        "text": "Evening review of the day - where were you selfish, dishonest, resentful, or afraid?",
                    },
                    {"key": "spot_check", "text": "Spot-check inventory throughout the day"},
                ],
            },
        ],
    },
]

# Full prayer text shown on the step view and in the export
PRAYER_TEXT_BY_STEP = {3: THIRD_STEP_PRAYER, 7: SEVENTH_STEP_PRAYER}

# --- Step passwords ---
# Sponsors hand these to sponsees when they are ready for each step.
STEP_PASSWORDS = {
    1: "honest",
    2: "hope",
    3: "faith",
    4: "courage",
    5: "truth",
    6: "prepare",
    7: "asking",
    8: "accountable",
    9: "healing",
    10: "watchful",
    11: "conscious",
    12: "carry",
}

# --- Encouragement messages ---
ENCOURAGEMENT_MESSAGES = [
    # Progress & Growth
    "Every step forward is progress. You're doing great work today.",
    "Recovery is a journey, not a destination. Keep walking the path.",
    "Today is a gift. Use it wisely on your recovery.",
    "Small steps lead to big changes. Keep going!",
    "Your commitment to growth is inspiring. Keep it up!",
    # Self-Compassion
    "Be gentle with yourself today. You're doing hard work.",
    "Progress, not perfection. That's all that's asked of you.",
    "You are worthy of the life you're building.",
    "Give yourself credit for showing up each day.",
    "Self-compassion is a strength, not a weakness.",
    # Courage & Strength
    "Courage isn't the absence of fear. It's taking action despite it.",
    "You have the strength within you. Trust the process.",
    "Every day you stay the course, you grow stronger.",
    "Your bravery in facing yourself is remarkable.",
    "The work you're doing takes real courage.",
    # Connection & Community
    "You're not alone on this journey. Reach out today.",
    "Connection is the opposite of addiction. Stay connected.",
    "Consider calling your sponsor or a friend today.",
    "Being of service to others strengthens your own recovery.",
    "The fellowship is here for you. Lean on it.",
    # Gratitude & Mindfulness
    "Take a moment to notice three things you're grateful for today.",
    "Each sober day is a blessing. Acknowledge your progress.",
    "Stay present in this moment. It's all we truly have.",
    "Gratitude turns what we have into enough.",
    "Pause today and appreciate how far you've come.",
    # Spiritual Growth
    "Your higher power is with you today. Trust the plan.",
    "Prayer and meditation can center you when things feel uncertain.",
    "Turn it over. You don't have to carry everything alone.",
    "Faith can move mountains, one day at a time.",
    "Seek conscious contact with your higher power today.",
    # Action & Service
    "Today, look for ways to be of service to others.",
    "Action is the magic word. What can you do today?",
    "Your recovery can inspire someone else's beginning.",
    "Helping others is healing for yourself.",
    "Practice these principles in all your affairs today.",
    # Patience & Trust
    "Trust the process, even when you can't see the outcome.",
    "Patience is a virtue, especially in recovery.",
    "One day at a time. Sometimes one moment at a time.",
    "Good things are unfolding, even if you can't see them yet.",
    "Let go of what you can't control. Focus on what you can.",
    # Hope & Renewal
    "Every sunrise is a new beginning. Start fresh today.",
    "Hope is the foundation of recovery. Never give up.",
    "Today holds possibilities you haven't imagined yet.",
    "Your story isn't over. The best chapters may lie ahead.",
    "Believe in the person you're becoming.",
]

STEP_ENCOURAGEMENTS = {
    1: [
        "Admitting powerlessness is the first act of true strength.",
        "Recognizing unmanageability opens the door to a new life.",
        "The first step is the foundation for everything that follows.",
    ],
    2: [
        "Belief in something greater opens new possibilities.",
        "Sanity is found when we stop trying to control everything.",
        "Hope begins when we look beyond ourselves.",
    ],
    3: [
        "Turning it over doesn't mean giving up. It means trusting.",
        "The decision you made today changes everything.",
        "God's will often leads to better outcomes than our own plans.",
    ],
    4: [
        "Honest self-examination is the path to freedom.",
        "Looking at resentments helps us release them.",
        "Your fearless inventory is an act of courage.",
    ],
    5: [
        "Sharing our wrongs with another brings light to the darkness.",
        "Admission is liberation. You're setting yourself free.",
        "What we share loses its power over us.",
    ],
    6: [
        "Willingness is the key that opens every door.",
        "Being ready for change is itself a change.",
        "Let go of what no longer serves you.",
    ],
    7: [
        "Humility is not thinking less of yourself, but thinking of yourself less.",
        "Asking for help is a sign of wisdom, not weakness.",
        "Character transformation is happening within you.",
    ],
    8: [
        "Making the list begins the healing.",
        "Willingness to make amends is already progress.",
        "Freedom from the past starts with acknowledging it.",
    ],
    9: [
        "Each amend you make lightens your load.",
        "Cleaning up your side of the street brings peace.",
        "The promises are becoming real in your life.",
    ],
    10: [
        "Daily inventory keeps you on the right path.",
        "Catching resentments early prevents them from growing.",
        "Prompt admission maintains your spiritual condition.",
    ],
    11: [
        "Prayer and meditation deepen your conscious contact.",
        "Seek guidance, not outcomes.",
        "The still, small voice is worth listening for.",
    ],
    12: [
        "Carrying the message solidifies your own recovery.",
        "Service to others is the spiritual foundation of this work.",
        "Practice these principles in all your affairs. You've earned it.",
    ],
}
