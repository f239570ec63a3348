"""
Google Meet-specific DOM selectors, page texts and JavaScript.

This module centralizes all Meet UI selectors and JavaScript code for:
- Pre-join setup and the join flow
- Admission / lobby detection
- Caption enabling and caption capture
- Leaving the call

Note: Meet's class names are obfuscated and change between releases, so
every element type carries several fallbacks, tried in order.
"""

import re

# =============================================================================
# DOM SELECTORS
# =============================================================================

MEET_SELECTORS = {
    # -------------------------------------------------------------------------
    # Pre-join Screen
    # -------------------------------------------------------------------------

    "camera_off": [
        "[data-is-muted='false'][aria-label*='camera' i]",
        "[aria-label*='Turn off camera' i]",
    ],

    "mic_off": [
        "[data-is-muted='false'][aria-label*='microphone' i]",
        "[aria-label*='Turn off microphone' i]",
    ],

    "name_input": [
        "input[aria-label*='name' i]",
        "input[placeholder*='name' i]",
    ],

    # -------------------------------------------------------------------------
    # Join Controls
    # -------------------------------------------------------------------------

    # Any join-like control, used to wait for the pre-join screen to render
    "join_any": [
        "button[aria-label*='Join' i]",
        "button[aria-label*='Ask' i]",
        "button:has-text('Join')",
        "button:has-text('Ask to join')",
        "button:has-text('Request to join')",
    ],

    # Direct join (no host approval needed)
    "direct_join": [
        "button[aria-label*='Join now' i]",
        "button[aria-label*='Join meeting' i]",
        "button:has-text('Join now')",
        "button:has-text('Join meeting')",
        "[role='button']:has-text('Join now')",
    ],

    # Request to join (host must admit)
    "request_join": [
        "button[aria-label*='Ask to join' i]",
        "button[aria-label*='Request to join' i]",
        "button:has-text('Ask to join')",
        "button:has-text('Request to join')",
        "[role='button']:has-text('Ask to join')",
        "[role='button']:has-text('Request to join')",
    ],

    # Generic fallbacks; the path is decided from the clicked text
    "fallback_join": [
        "button:has-text('Join')",
        "[role='button']:has-text('Join')",
        "button[jsname='Qx7uuf']",
        "[data-idom-class*='join'] button",
        "span:has-text('Join now')",
        "span:has-text('Ask to join')",
    ],

    # Join control inside embedded frames
    "frame_join": [
        "button[aria-label*='Join' i]",
        "button:has-text('Join')",
        "[role='button']:has-text('Join')",
    ],

    # -------------------------------------------------------------------------
    # In-meeting Indicators
    # -------------------------------------------------------------------------

    "in_meeting": [
        "button[aria-label*='Leave call' i]",
        "button[aria-label*='Leave meeting' i]",
        "[aria-label*='Leave call' i]",
        "[data-tooltip*='Leave call' i]",
        "button[aria-label*='caption' i]",
        "button[aria-label*='subtitle' i]",
        "button[aria-label*='people' i]",
        "button[aria-label*='participant' i]",
        "[data-meeting-title]",
    ],

    # -------------------------------------------------------------------------
    # Captions
    # -------------------------------------------------------------------------

    # Present only while captions are ON
    "captions_on": [
        "button[aria-label*='Turn off captions' i]",
        "button[aria-pressed='true'][aria-label*='caption' i]",
        "button[data-tooltip*='Turn off captions' i]",
        "[aria-label*='Turn off captions' i]",
    ],

    # Visible caption surface (also means captions are ON)
    "caption_containers": [
        "[class*='caption']",
        "[class*='iTTPOb']",
        "[class*='TBMuR']",
        "[class*='iOzk7']",
        "[data-message-text]",
    ],

    "caption_buttons": [
        "button[aria-label*='Turn on captions' i]",
        "button[aria-label*='captions' i]",
        "[aria-label*='Turn on captions' i]",
        "button[data-tooltip*='captions' i]",
    ],

    # Clicked so keyboard shortcuts reach the meeting app
    "focus_targets": [
        "[class*='video']",
        "main",
        "[role='main']",
        "[class*='content']",
        "body",
    ],

    # Locator fallback for caption text
    "live_regions": [
        "[aria-live='polite']",
        "[aria-live='assertive']",
        "[role='status']",
        "[class*='caption']",
        "[class*='subtitle']",
        "[data-message-text]",
    ],

    "consent_join": [
        "text='Join now'",
    ],
}


# =============================================================================
# PAGE TEXTS
# =============================================================================

# Guests are not allowed at all
BLOCKED_TEXTS = [
    "You can't join this video call",
    "Return to home screen",
    "Returning to home screen",
]

# The host turned the request down or removed the bot
DENIED_TEXTS = [
    "You were removed from the meeting",
    "denied your request",
]

WAITING_TEXTS = [
    "Waiting for someone to let you in",
    "Asking to be let in",
    "Someone will let you in soon",
]

MEETING_ENDED_TEXTS = [
    "You have been removed from the meeting",
    "The meeting has ended",
    "You left the meeting",
    "Return to home screen",
]

JOIN_ROLE_PATTERN = re.compile(
    r"join|ask to join|request to join|join now|join meeting", re.IGNORECASE
)

# Clicked control text that means the host must admit us
REQUEST_JOIN_MARKERS = ("ask", "request")


# =============================================================================
# JAVASCRIPT
# =============================================================================

STEALTH_INIT_JS = """
() => {
    Object.defineProperty(navigator, 'webdriver', { get: () => undefined });

    window.chrome = { runtime: {} };

    const originalQuery = window.navigator.permissions.query;
    window.navigator.permissions.query = (parameters) => (
        parameters.name === 'notifications' ?
            Promise.resolve({ state: Notification.permission }) :
            originalQuery(parameters)
    );

    Object.defineProperty(navigator, 'plugins', {
        get: () => [1, 2, 3, 4, 5]
    });

    Object.defineProperty(navigator, 'languages', {
        get: () => ['en-US', 'en']
    });
}
"""

# Detects recording / note-taking consent dialogs and "Got it" notifications.
# Returns {found, text, clicked, gotIt}; clicked is 'join-now:<n>' on success.
CONSENT_DISMISS_JS = """
() => {
    const result = { found: false, text: '', clicked: '', gotIt: false };

    const consentPhrases = [
        'Gemini is taking notes',
        'being recorded and transcribed',
        'being recorded',
        'This video call is being recorded',
        'This call is being recorded',
        'recording in progress'
    ];

    const body = document.body ? document.body.innerText : '';
    for (const phrase of consentPhrases) {
        if (body.includes(phrase)) {
            result.found = true;
            result.text = phrase;
            break;
        }
    }

    if (result.found) {
        const allEls = document.querySelectorAll('button, [role="button"], a, span, div[role="link"], [tabindex]');
        const joinCandidates = [];
        for (const el of allEls) {
            if ((el.textContent || '').trim() === 'Join now') {
                joinCandidates.push(el);
            }
        }
        // The consent dialog's button is the last one rendered
        if (joinCandidates.length > 0) {
            joinCandidates[joinCandidates.length - 1].click();
            result.clicked = 'join-now:' + joinCandidates.length;
        } else {
            result.clicked = 'not-found';
        }
    }

    for (const btn of document.querySelectorAll('button, [role="button"]')) {
        if ((btn.textContent || '').trim() === 'Got it' && btn.offsetParent !== null) {
            btn.click();
            result.gotIt = true;
            break;
        }
    }

    return result;
}
"""

# Returns {speaker, text, method}; text is '' when nothing was found.
CAPTION_EXTRACTION_JS = """
() => {
    const result = { speaker: '', text: '', method: '' };
    const MAX_LEN = 800;

    const uiPatterns = /Press Down Arrow|hover tray|Escape to close|Press Enter|Press Tab|Use arrow keys|keyboard shortcut|Screen reader|Click to|Tap to|Swipe|Double-click|Right-click|participants? in this call|You're presenting|Present now|Stop presenting|Turn on|Turn off|microphone|camera|Leave call|End call|More options|Activities|raised hand|raise hand|lower hand|Reactions|Send a message|Chat with|Open chat|BETA|Font size|language|settings|Afrikaans|Albanian|Amharic|Arabic/i;
    const isUIText = (text) => uiPatterns.test(text);
    const usable = (text, min) => text.length > min && text.length < MAX_LEN && !isUIText(text);

    function found(speaker, text, method) {
        result.speaker = speaker || 'Unknown';
        result.text = text || '';
        result.method = method;
        return result;
    }

    function splitSpeaker(raw, method) {
        const lines = raw.split(/[\\n\\r]+/).map(l => l.trim()).filter(l => l.length > 0 && !isUIText(l));
        if (lines.length >= 2) {
            const first = lines[0];
            const rest = lines.slice(1).join(' ').trim();
            if (first.length < 60 && rest.length > 1 && !isUIText(rest)) {
                return found(first, rest, method);
            }
        }
        if (lines.length === 1 && lines[0].length > 2) {
            return found('Unknown', lines[0], method + '-single');
        }
        return null;
    }

    // 1: data-message-text attribute
    for (const el of document.querySelectorAll('[data-message-text]')) {
        const text = el.getAttribute('data-message-text') || (el.innerText || '').trim();
        if (usable(text, 1)) {
            const parent = el.closest('[data-sender-name]') || el.closest('[data-self-name]');
            const speaker = parent
                ? (parent.getAttribute('data-sender-name') || parent.getAttribute('data-self-name'))
                : 'Unknown';
            return found(speaker, text, 'data-message-text');
        }
    }

    // 2: sender containers
    for (const c of document.querySelectorAll('[data-sender-name], [data-self-name]')) {
        const name = c.getAttribute('data-sender-name') || c.getAttribute('data-self-name') || '';
        const textEl = c.querySelector('[data-message-text]') || c;
        const text = textEl.getAttribute('data-message-text') || (textEl.innerText || '').trim();
        if (usable(text, 1)) {
            return found(name, text, 'sender-container');
        }
    }

    // 3: known Meet caption classes
    for (const el of document.querySelectorAll('.iTTPOb, .TBMuR, .iOzk7, .a4cQT, .zs7s8d, .CNusmb, .Mz6pEf, .NWpY1c')) {
        const text = (el.innerText || '').trim();
        if (usable(text, 2)) {
            return found('Unknown', text, 'meet-class');
        }
    }

    // 4: caption / subtitle divs
    for (const el of document.querySelectorAll('div[class*="caption" i], div[class*="subtitle" i], span[class*="caption" i]')) {
        const text = (el.innerText || '').trim();
        if (!usable(text, 1)) continue;
        let speaker = 'Unknown';
        const parent = el.closest('[class*="caption"]');
        const nameEl = parent ? parent.querySelector('[class*="name"]') : null;
        if (nameEl) speaker = (nameEl.textContent || '').trim();
        return found(speaker, text, 'caption-div');
    }

    // 5: aria-live regions
    for (const el of document.querySelectorAll('[aria-live="polite"], [aria-live="assertive"]')) {
        const raw = (el.innerText || '').trim();
        if (!usable(raw, 1)) continue;
        const hit = splitSpeaker(raw, 'aria-live');
        if (hit) return hit;
    }

    // 6: role=region
    for (const region of document.querySelectorAll('[role="region"]')) {
        const raw = (region.innerText || '').trim();
        if (!usable(raw, 1)) continue;
        const hit = splitSpeaker(raw, 'region');
        if (hit) return hit;
    }

    return result;
}
"""

LEAVE_JS = """
() => {
    const btn = document.querySelector('button[aria-label*="Leave" i]') ||
                document.querySelector('[aria-label*="Leave call" i]') ||
                document.querySelector('[data-tooltip*="Leave" i]');
    if (btn) { btn.click(); return 'clicked'; }

    for (const b of document.querySelectorAll('button')) {
        if (b.innerHTML.includes('call_end') || b.innerText.toLowerCase().includes('leave')) {
            b.click();
            return 'clicked-alt';
        }
    }
    return 'not-found';
}
"""

LEAVE_CONFIRM_JS = """
() => {
    for (const b of document.querySelectorAll('button')) {
        const txt = (b.innerText || b.textContent || '').toLowerCase();
        const label = (b.getAttribute('aria-label') || '').toLowerCase();
        if (txt === 'leave' || txt === 'leave call' ||
            label.includes('leave call') || label.includes('leave meeting')) {
            b.click();
            return 'confirmed';
        }
    }
    return 'no-confirm';
}
"""


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def get_selectors_for(element_type: str) -> list:
    """
    Get list of selectors for a specific element type.

    Args:
        element_type: Key from MEET_SELECTORS dict

    Returns:
        List of CSS/text selectors to try, in priority order
    """
    return MEET_SELECTORS.get(element_type, [])


def combined_selector(element_type: str) -> str:
    """
    Join an element type's selectors into one comma-separated selector.

    Args:
        element_type: Key from MEET_SELECTORS dict

    Returns:
        Selector matching any of the alternatives
    """
    return ", ".join(get_selectors_for(element_type))
