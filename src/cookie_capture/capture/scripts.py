"""
Page-context functions passed to Playwright's `evaluate` / `evaluate_handle`.

Every input (XPath, values) travels as the evaluate argument. Nothing here is built by string
formatting, so locators and credentials can never change the script itself.
"""

# arg: xpath string -> first matching node or null
RESOLVE_XPATH = """
(xpath) => {
  try {
    return document.evaluate(
      xpath, document, null, XPathResult.FIRST_ORDERED_NODE_TYPE, null
    ).singleNodeValue;
  } catch (_) {
    return null;
  }
}
"""

ELEMENT_STATE = """
(el) => {
  const style = window.getComputedStyle(el);
  const rect = el.getBoundingClientRect();
  return {
    visible: style.display !== 'none'
      && style.visibility !== 'hidden'
      && style.opacity !== '0'
      && rect.width > 0 && rect.height > 0,
    disabled: !!el.disabled || el.hasAttribute('disabled')
      || el.getAttribute('aria-disabled') === 'true',
    readOnly: !!el.readOnly || el.hasAttribute('readonly'),
  };
}
"""

FORCE_VISIBLE = """
(el) => {
  el.style.removeProperty('display');
  el.style.removeProperty('visibility');
  el.style.removeProperty('opacity');
  if (window.getComputedStyle(el).display === 'none') {
    el.style.setProperty('display', 'block', 'important');
  }
  if (window.getComputedStyle(el).visibility === 'hidden') {
    el.style.setProperty('visibility', 'visible', 'important');
  }
  el.removeAttribute('hidden');
  return true;
}
"""

FORCE_ENABLED = """
(el) => {
  el.disabled = false;
  el.readOnly = false;
  el.removeAttribute('disabled');
  el.removeAttribute('readonly');
  el.removeAttribute('aria-disabled');
  return true;
}
"""

FORCE_FOCUS = """
(el) => { el.focus(); return document.activeElement === el; }
"""

FORCE_CLEAR = """
(el) => {
  el.value = '';
  el.dispatchEvent(new Event('input', { bubbles: true }));
  return el.value;
}
"""

# arg: value string. Uses the prototype setter so React-style controlled inputs see the change.
FORCE_VALUE = """
(el, value) => {
  const proto = el instanceof HTMLTextAreaElement
    ? HTMLTextAreaElement.prototype
    : HTMLInputElement.prototype;
  const setter = Object.getOwnPropertyDescriptor(proto, 'value');
  if (setter && setter.set && (el instanceof HTMLInputElement || el instanceof HTMLTextAreaElement)) {
    setter.set.call(el, value);
  } else {
    el.value = value;
  }
  el.dispatchEvent(new Event('input', { bubbles: true }));
  el.dispatchEvent(new Event('change', { bubbles: true }));
  return el.value;
}
"""

READ_VALUE = """
(el) => (el.value !== undefined ? String(el.value) : (el.textContent || ''))
"""

PROGRAMMATIC_CLICK = """
(el) => { el.click(); return true; }
"""

DOCUMENT_COOKIE = "() => document.cookie"

# arg: url string
HREF_CHANGED = "(before) => window.location.href !== before"
